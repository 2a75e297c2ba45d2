"""
Unit tests for the cache invalidation facade.
"""

from unittest.mock import AsyncMock

import pytest

from clinic_cache.services.cache.registry import CachePatterns
from clinic_cache.services.invalidation.facade import CacheInvalidation


@pytest.fixture
def mock_engine():
    return AsyncMock()


class TestCacheInvalidationFacade:
    """Test domain operations map to the right events."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,entity_type,operation",
        [
            ("patient_created", "Patient", "created"),
            ("patient_updated", "Patient", "updated"),
            ("patient_deleted", "Patient", "deleted"),
            ("appointment_created", "Appointment", "created"),
            ("appointment_updated", "Appointment", "updated"),
            ("appointment_cancelled", "Appointment", "cancelled"),
            ("report_created", "Report", "created"),
            ("report_updated", "Report", "updated"),
            ("user_login", "User", "login"),
            ("user_logout", "User", "logout"),
            ("user_updated", "User", "updated"),
        ],
    )
    async def test_entity_operations(self, mock_engine, method, entity_type, operation):
        facade = CacheInvalidation(mock_engine)

        await getattr(facade, method)("42")

        mock_engine.smart_invalidate.assert_awaited_once_with(entity_type, "42", operation)

    @pytest.mark.asyncio
    async def test_daily_schedule_changed(self, mock_engine):
        facade = CacheInvalidation(mock_engine)

        await facade.daily_schedule_changed("2024-01-15")

        event = mock_engine.invalidate.await_args.args[0]
        assert event.type == "schedule:daily_change"
        assert event.entity_type == "Schedule"
        assert event.metadata == {"date": "2024-01-15"}

    @pytest.mark.asyncio
    async def test_refresh_analytics(self, mock_engine):
        facade = CacheInvalidation(mock_engine)

        await facade.refresh_analytics()

        event = mock_engine.invalidate.await_args.args[0]
        assert event.type == "analytics:refresh"
        assert event.entity_type == "Analytics"
        assert event.entity_id is None

    @pytest.mark.asyncio
    async def test_user_logout_clears_sessions(
        self, facade, session_manager, session_payload
    ):
        session_id = await session_manager.create_session(session_payload)

        await facade.user_logout("user-1")

        assert await session_manager.get_session(session_id) is None

    @pytest.mark.asyncio
    async def test_appointment_created_clears_schedule(self, facade, registry):
        daily = CachePatterns.daily_appointments("2024-01-15")
        await registry.get(daily["namespace"]).set(
            daily["key"], ["a1"], ttl=300, tags=daily["tags"]
        )

        await facade.appointment_created("a2")

        assert await registry.get(daily["namespace"]).get(daily["key"]) is None
