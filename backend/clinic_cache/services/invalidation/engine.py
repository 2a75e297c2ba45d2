"""
Cache Invalidation Engine

Rule-driven invalidation: domain events are queued FIFO and drained by a
single in-flight processor that matches rules by trigger and invalidates
each rule's targets. Delayed rules run out of band on their own tasks.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Deque, Dict, Iterable, List, Optional, Set

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...constants import ANALYTICS_NAMESPACE, DAILY_SCHEDULE_TAG
from ...core.config import Settings, settings as default_settings
from ...domain.cache.entities import InvalidationEvent, InvalidationRule
from ...domain.cache.value_objects import (
    GenericTag,
    InvalidationTarget,
    ModelTarget,
    NamespacedTag,
)
from ..cache.registry import CacheRegistry
from ..sessions.session_manager import SessionManager
from .model_invalidator import ModelInvalidator
from .rules import default_rules

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CacheInvalidationEngine:
    """
    Invalidation rule engine.

    ``processing`` is a cooperative lock: only one drain loop runs at a
    time on the event loop. A caller arriving while a drain is running
    enqueues and returns; the running drain picks its event up.
    """

    def __init__(
        self,
        registry: CacheRegistry,
        session_manager: SessionManager,
        settings: Optional[Settings] = None,
        model_invalidator: Optional[ModelInvalidator] = None,
        rules: Optional[Iterable[InvalidationRule]] = None,
    ):
        self.registry = registry
        self.session_manager = session_manager
        self.settings = settings or default_settings
        self.model_invalidator = model_invalidator or ModelInvalidator(
            registry, session_manager
        )

        self._rules: List[InvalidationRule] = []
        self._queue: Deque[InvalidationEvent] = deque()
        self.processing = False

        self._delayed_tasks: Set[asyncio.Task] = set()
        self._sweep_task: Optional[asyncio.Task] = None

        self._events_processed = 0
        self._rules_executed = 0
        self._rule_failures = 0

        for rule in default_rules() if rules is None else rules:
            self.add_rule(rule)

    @property
    def rules(self) -> List[InvalidationRule]:
        return list(self._rules)

    def add_rule(self, rule: InvalidationRule) -> None:
        """Append a rule; rules sharing a trigger all fire."""
        self._rules.append(rule)
        logger.debug(
            f"Cache invalidation rule added: {rule.trigger}",
            extra={"trigger": rule.trigger, "targets": len(rule.targets)},
        )

    def remove_rule(self, trigger: str) -> int:
        """
        Remove every rule with the given trigger.

        Returns:
            Number of rules removed
        """
        before = len(self._rules)
        self._rules = [rule for rule in self._rules if rule.trigger != trigger]
        removed = before - len(self._rules)

        if removed:
            logger.info(
                f"Cache invalidation rules removed: {trigger}",
                extra={"trigger": trigger, "removed_count": removed},
            )
        return removed

    async def invalidate(self, event: InvalidationEvent) -> None:
        """
        Enqueue an event and drain the queue unless a drain is running.

        The first caller drains the whole queue, including events added
        by other callers during the drain.
        """
        started = time.perf_counter()
        try:
            self._queue.append(event)
            if not self.processing:
                await self._drain()

            logger.info(
                f"Cache invalidation triggered: {event.type}",
                extra={
                    "event_type": event.type,
                    "entity_type": event.entity_type,
                    "entity_id": event.entity_id,
                    "processing_time_ms": round(
                        (time.perf_counter() - started) * 1000, 2
                    ),
                },
            )

        except Exception as e:
            logger.error(f"Cache invalidation failed for event {event.type}: {e}")
            raise

    async def smart_invalidate(
        self, entity_type: str, entity_id: Optional[str], operation: str
    ) -> None:
        """Invalidate for ``<entity_type lower-cased>:<operation>``."""
        await self.invalidate(
            InvalidationEvent.for_entity(entity_type, entity_id, operation)
        )

    async def bulk_invalidate(self, events: Iterable[InvalidationEvent]) -> None:
        """Enqueue all events, then drain once."""
        events = list(events)
        started = time.perf_counter()
        try:
            self._queue.extend(events)
            await self._drain()

            logger.info(
                f"Bulk cache invalidation completed for {len(events)} events",
                extra={
                    "event_count": len(events),
                    "processing_time_ms": round(
                        (time.perf_counter() - started) * 1000, 2
                    ),
                },
            )

        except Exception as e:
            logger.error(f"Bulk cache invalidation failed for {len(events)} events: {e}")
            raise

    async def invalidate_user_context(self, user_id: str, context: List[str]) -> None:
        """Emit ``user:context_change`` for a user with the changed context."""
        await self.invalidate(
            InvalidationEvent(
                type="user:context_change",
                entity_type="User",
                entity_id=user_id,
                metadata={"context": list(context)},
            )
        )

    async def schedule_invalidation(self, trigger: str, delay_ms: int) -> None:
        """Fire a ``Schedule`` event for ``trigger`` after ``delay_ms``."""
        if delay_ms < 0:
            raise ValueError("delay_ms cannot be negative")

        self._spawn(self._run_scheduled(trigger, delay_ms))
        logger.info(
            f"Cache invalidation scheduled: {trigger}",
            extra={"trigger": trigger, "delay_ms": delay_ms},
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "rules_count": len(self._rules),
            "queue_size": len(self._queue),
            "processing": self.processing,
            "pending_delayed": len(self._delayed_tasks),
            "events_processed": self._events_processed,
            "rules_executed": self._rules_executed,
            "rule_failures": self._rule_failures,
        }

    async def start(self) -> None:
        """Start the background queue sweep."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info("Cache invalidation sweep started")

    async def stop(self) -> None:
        """Stop the sweep and cancel pending delayed work."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
            logger.info("Cache invalidation sweep stopped")

        pending = list(self._delayed_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(f"Cancelled {len(pending)} delayed invalidations")

    async def _sweep_loop(self) -> None:
        interval = self.settings.INVALIDATION_SWEEP_INTERVAL_SECONDS
        while True:
            try:
                await asyncio.sleep(interval)
                if self._queue and not self.processing:
                    await self._drain()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Cache invalidation sweep error: {e}")

    async def _drain(self) -> None:
        if self.processing or not self._queue:
            return

        self.processing = True
        try:
            while self._queue:
                event = self._queue.popleft()
                await self._process_event(event)
                self._events_processed += 1
        finally:
            self.processing = False

    async def _process_event(self, event: InvalidationEvent) -> None:
        matching = [rule for rule in self._rules if rule.trigger == event.type]
        if not matching:
            logger.debug(
                f"No invalidation rules for event {event.type}",
                extra={"event_type": event.type},
            )
            return

        for rule in matching:
            try:
                if not rule.matches(event):
                    continue

                if rule.delay:
                    self._spawn(self._run_delayed(rule, event))
                else:
                    await self._execute_rule(rule, event)

            except Exception as e:
                self._rule_failures += 1
                logger.error(
                    f"Error executing invalidation rule {rule.trigger}: {e}",
                    extra={"trigger": rule.trigger, "event_type": event.type},
                )

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.create_task(coro)
        self._delayed_tasks.add(task)
        task.add_done_callback(self._delayed_tasks.discard)

    async def _run_delayed(self, rule: InvalidationRule, event: InvalidationEvent) -> None:
        await asyncio.sleep(rule.delay / 1000)
        try:
            await self._execute_rule(rule, event)
        except Exception as e:
            self._rule_failures += 1
            logger.error(
                f"Error executing delayed invalidation rule {rule.trigger}: {e}",
                extra={"trigger": rule.trigger, "delay_ms": rule.delay},
            )

    async def _run_scheduled(self, trigger: str, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        try:
            await self.invalidate(
                InvalidationEvent(type=trigger, entity_type="Schedule")
            )
        except Exception as e:
            logger.error(f"Scheduled invalidation failed for {trigger}: {e}")

    async def _execute_rule(
        self, rule: InvalidationRule, event: InvalidationEvent
    ) -> None:
        with tracer.start_as_current_span("invalidation.execute_rule") as span:
            span.set_attribute("invalidation.trigger", rule.trigger)
            span.set_attribute("invalidation.target_count", len(rule.targets))
            started = time.perf_counter()

            try:
                for target in rule.targets:
                    await self._invalidate_target(target, event)

                if rule.cascade and event.entity_id:
                    await self._cascade(event)

            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            self._rules_executed += 1
            logger.debug(
                f"Invalidation rule executed: {rule.trigger}",
                extra={
                    "trigger": rule.trigger,
                    "targets": len(rule.targets),
                    "cascade": rule.cascade,
                    "execution_time_ms": round(
                        (time.perf_counter() - started) * 1000, 2
                    ),
                },
            )

    async def _invalidate_target(
        self, target: InvalidationTarget, event: InvalidationEvent
    ) -> None:
        if isinstance(target, ModelTarget):
            await self.model_invalidator.invalidate(target.model, event.entity_id)
        elif isinstance(target, NamespacedTag):
            await self.registry.get(target.namespace).invalidate_tag(target.tag)
        elif isinstance(target, GenericTag):
            await asyncio.gather(
                *(manager.invalidate_tag(target.tag) for manager in self.registry.all())
            )
        else:
            raise TypeError(f"Unsupported invalidation target: {target!r}")

    async def _cascade(self, event: InvalidationEvent) -> None:
        try:
            if event.entity_type == "Appointment":
                await self.registry.get(ANALYTICS_NAMESPACE).invalidate_tag(
                    DAILY_SCHEDULE_TAG
                )
            elif event.entity_type == "User":
                await self.session_manager.destroy_user_sessions(
                    event.user_id or event.entity_id
                )

            logger.debug(
                f"Cascade invalidation completed for {event.entity_type}",
                extra={"entity_type": event.entity_type, "entity_id": event.entity_id},
            )

        except Exception as e:
            logger.error(f"Cascade invalidation failed for {event.entity_type}: {e}")
