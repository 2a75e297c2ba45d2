"""
Cache Domain Entities

Core domain entities for the cache core: invalidation rules and events,
session records and per-manager cache statistics.
"""

from collections import deque
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Callable, Deque, Dict, Iterable, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from ...constants import RESPONSE_TIME_WINDOW, now_ms
from .value_objects import InvalidRuleError, InvalidationTarget, parse_target


@dataclass
class InvalidationEvent:
    """
    A domain mutation that may invalidate cached data.

    ``type`` is matched exactly against rule triggers. Events are
    transient: queued in memory and consumed once.
    """

    type: str
    entity_type: str
    entity_id: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def for_entity(
        cls, entity_type: str, entity_id: Optional[str], operation: str
    ) -> "InvalidationEvent":
        """Build ``<entity>:<operation>`` event, e.g. ``patient:created``."""
        return cls(
            type=f"{entity_type.lower()}:{operation}",
            entity_type=entity_type,
            entity_id=entity_id,
        )


@dataclass(frozen=True)
class InvalidationRule:
    """
    Trigger to targets mapping.

    Immutable once built. Several rules may share a trigger and all of
    them fire. ``delay`` is in milliseconds.
    """

    trigger: str
    targets: Tuple[InvalidationTarget, ...]
    delay: Optional[int] = None
    cascade: bool = False
    condition: Optional[Callable[[InvalidationEvent], bool]] = None

    def __post_init__(self) -> None:
        if not self.trigger:
            raise InvalidRuleError("Rule trigger cannot be empty")
        if not self.targets:
            raise InvalidRuleError(f"Rule {self.trigger} has no targets")
        if self.delay is not None and self.delay < 0:
            raise InvalidRuleError(f"Rule {self.trigger} has a negative delay")
        object.__setattr__(
            self, "targets", tuple(parse_target(target) for target in self.targets)
        )

    @classmethod
    def create(
        cls,
        trigger: str,
        targets: Iterable[Union[str, InvalidationTarget]],
        delay: Optional[int] = None,
        cascade: bool = False,
        condition: Optional[Callable[[InvalidationEvent], bool]] = None,
    ) -> "InvalidationRule":
        """Create rule from string or typed targets."""
        return cls(
            trigger=trigger,
            targets=tuple(parse_target(target) for target in targets),
            delay=delay,
            cascade=cascade,
            condition=condition,
        )

    def matches(self, event: InvalidationEvent) -> bool:
        """Check trigger and optional condition against an event."""
        if self.trigger != event.type:
            return False
        if self.condition is not None and not self.condition(event):
            return False
        return True


class SessionData(BaseModel):
    """Caller-supplied data for a new session."""

    user_id: str = Field(..., min_length=1, description="Owner of the session")
    email: str = Field(..., description="User email")
    role: str = Field(..., description="User role")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    metadata: Optional[Dict[str, Any]] = Field(
        None, description="Free-form session metadata"
    )

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v):
        if any(char.isspace() for char in v):
            raise ValueError("user_id cannot contain whitespace")
        return v


@dataclass
class SessionRecord:
    """
    Stored session.

    Timestamps are epoch milliseconds. The cache store is the source of
    truth; instances are snapshots.
    """

    session_id: str
    user_id: str
    email: str
    role: str
    created_at: int
    last_activity: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    # Fields a touch may overwrite
    MUTABLE_FIELDS = frozenset(
        {"email", "role", "ip_address", "user_agent", "metadata"}
    )

    @classmethod
    def create(cls, session_id: str, data: SessionData) -> "SessionRecord":
        now = now_ms()
        return cls(
            session_id=session_id,
            user_id=data.user_id,
            email=data.email,
            role=data.role,
            created_at=now,
            last_activity=now,
            ip_address=data.ip_address,
            user_agent=data.user_agent,
            metadata=data.metadata,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def is_idle(self, max_age_seconds: int, now: Optional[int] = None) -> bool:
        """True when last activity is older than ``max_age_seconds``."""
        now = now if now is not None else now_ms()
        return now - self.last_activity > max_age_seconds * 1000

    def touched(self, patch: Optional[Dict[str, Any]] = None) -> "SessionRecord":
        """Copy with ``patch`` merged and last activity refreshed."""
        patch = patch or {}
        invalid = set(patch) - self.MUTABLE_FIELDS
        if invalid:
            raise ValueError(f"Session fields cannot be updated: {sorted(invalid)}")

        data = self.to_dict()
        data.update(patch)
        data["last_activity"] = max(now_ms(), self.last_activity)
        return SessionRecord.from_dict(data)


@dataclass
class SessionOptions:
    """Per-session options; unset values fall back to settings."""

    max_age: Optional[int] = None
    secure: Optional[bool] = None
    same_site: Optional[str] = None


@dataclass
class CacheStats:
    """Operation counters for one cache manager."""

    hits: int = 0
    misses: int = 0
    operations: int = 0
    errors: int = 0
    response_times: Deque[float] = field(
        default_factory=lambda: deque(maxlen=RESPONSE_TIME_WINDOW)
    )

    @property
    def hit_rate(self) -> float:
        """Hit rate in percent over all reads."""
        reads = self.hits + self.misses
        return (self.hits / reads) * 100 if reads else 0.0

    @property
    def avg_response_time_ms(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)

    def record_timing(self, elapsed_ms: float) -> None:
        self.response_times.append(elapsed_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 2),
            "operations": self.operations,
            "errors": self.errors,
            "avg_response_time_ms": round(self.avg_response_time_ms, 2),
        }
