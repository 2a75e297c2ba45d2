"""
Default invalidation rules.
"""

from typing import List

from ...constants import DAILY_SCHEDULE_TAG, SESSIONS_TAG
from ...domain.cache.entities import InvalidationRule
from ...domain.cache.value_objects import GenericTag, ModelTarget, NamespacedTag

ANALYTICS_REFRESH_DELAY_MS = 5000

DASHBOARD = NamespacedTag("analytics", "dashboard")
DAILY_SCHEDULE = GenericTag(DAILY_SCHEDULE_TAG)
SESSIONS = GenericTag(SESSIONS_TAG)


def default_rules() -> List[InvalidationRule]:
    """Rule table seeded into every invalidation engine."""
    patient = ModelTarget("Patient")
    appointment = ModelTarget("Appointment")
    report = ModelTarget("Report")

    rules = []

    for operation in ("created", "updated"):
        rules.append(
            InvalidationRule.create(
                f"patient:{operation}", [patient, DASHBOARD], cascade=True
            )
        )
    rules.append(
        InvalidationRule.create(
            "patient:deleted",
            [patient, appointment, report, DASHBOARD],
            cascade=True,
        )
    )

    for operation in ("created", "updated", "cancelled"):
        rules.append(
            InvalidationRule.create(
                f"appointment:{operation}",
                [appointment, DAILY_SCHEDULE, DASHBOARD],
                cascade=True,
            )
        )

    for operation in ("created", "updated"):
        rules.append(InvalidationRule.create(f"report:{operation}", [report, DASHBOARD]))

    rules.extend(
        [
            InvalidationRule.create("user:login", [DASHBOARD]),
            InvalidationRule.create("user:logout", [SESSIONS]),
            InvalidationRule.create(
                "user:updated", [ModelTarget("User"), SESSIONS], cascade=True
            ),
            InvalidationRule.create(
                "analytics:refresh",
                [DASHBOARD, ModelTarget("Analytics")],
                delay=ANALYTICS_REFRESH_DELAY_MS,
            ),
            InvalidationRule.create(
                "schedule:daily_change", [DAILY_SCHEDULE, appointment]
            ),
        ]
    )
    return rules
