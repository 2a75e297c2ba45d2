"""
Convenience entry points mapping domain operations to invalidation events.
"""

from ...domain.cache.entities import InvalidationEvent
from .engine import CacheInvalidationEngine


class CacheInvalidation:
    """Typed helpers over the invalidation engine."""

    def __init__(self, engine: CacheInvalidationEngine):
        self.engine = engine

    # Patient operations
    async def patient_created(self, patient_id: str) -> None:
        await self.engine.smart_invalidate("Patient", patient_id, "created")

    async def patient_updated(self, patient_id: str) -> None:
        await self.engine.smart_invalidate("Patient", patient_id, "updated")

    async def patient_deleted(self, patient_id: str) -> None:
        await self.engine.smart_invalidate("Patient", patient_id, "deleted")

    # Appointment operations
    async def appointment_created(self, appointment_id: str) -> None:
        await self.engine.smart_invalidate("Appointment", appointment_id, "created")

    async def appointment_updated(self, appointment_id: str) -> None:
        await self.engine.smart_invalidate("Appointment", appointment_id, "updated")

    async def appointment_cancelled(self, appointment_id: str) -> None:
        await self.engine.smart_invalidate("Appointment", appointment_id, "cancelled")

    # Report operations
    async def report_created(self, report_id: str) -> None:
        await self.engine.smart_invalidate("Report", report_id, "created")

    async def report_updated(self, report_id: str) -> None:
        await self.engine.smart_invalidate("Report", report_id, "updated")

    # User operations
    async def user_login(self, user_id: str) -> None:
        await self.engine.smart_invalidate("User", user_id, "login")

    async def user_logout(self, user_id: str) -> None:
        await self.engine.smart_invalidate("User", user_id, "logout")

    async def user_updated(self, user_id: str) -> None:
        await self.engine.smart_invalidate("User", user_id, "updated")

    async def daily_schedule_changed(self, date: str) -> None:
        await self.engine.invalidate(
            InvalidationEvent(
                type="schedule:daily_change",
                entity_type="Schedule",
                metadata={"date": date},
            )
        )

    async def refresh_analytics(self) -> None:
        await self.engine.invalidate(
            InvalidationEvent(type="analytics:refresh", entity_type="Analytics")
        )
