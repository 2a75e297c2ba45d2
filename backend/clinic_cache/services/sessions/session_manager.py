"""
Distributed Session Manager

Cache-backed session store with a per-user session index. Each user may
hold at most ``SESSION_MAX_CONCURRENT`` sessions; creating one more
evicts the oldest (FIFO). Stale index entries are pruned lazily on read.
"""

import logging
import secrets
from typing import Any, Dict, List, Optional, Set, Union

from opentelemetry import trace

from ...constants import SESSION_KEY_PREFIX, SESSIONS_TAG, USER_SESSIONS_KEY_PREFIX
from ...core.config import Settings, settings as default_settings
from ...domain.cache.entities import SessionData, SessionOptions, SessionRecord
from ..cache.cache_manager import CacheManager

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class SessionManager:
    """
    Session lifecycle over the sessions cache namespace.

    Session-not-found is never an error: reads return None and writes
    return False. Store failures are absorbed by the Cache Manager.
    """

    def __init__(self, cache: CacheManager, settings: Optional[Settings] = None):
        self.cache = cache
        self.settings = settings or default_settings
        self.max_age = self.settings.SESSION_MAX_AGE_SECONDS
        self.max_concurrent = self.settings.SESSION_MAX_CONCURRENT
        # Users this process has created sessions for
        self._known_users: Set[str] = set()

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}:{session_id}"

    @staticmethod
    def _index_key(user_id: str) -> str:
        return f"{USER_SESSIONS_KEY_PREFIX}:{user_id}"

    @staticmethod
    def _session_tags(user_id: str) -> List[str]:
        return [SESSIONS_TAG, f"user:{user_id}"]

    @staticmethod
    def generate_session_id() -> str:
        """256-bit random session id, hex encoded."""
        return secrets.token_hex(32)

    async def create_session(
        self,
        data: Union[SessionData, Dict[str, Any]],
        options: Optional[SessionOptions] = None,
    ) -> str:
        """
        Create a session and register it in the user's index.

        Args:
            data: Session data (user id, email, role, client info)
            options: Per-session options; ``max_age`` overrides the default TTL

        Returns:
            New session id
        """
        if not isinstance(data, SessionData):
            data = SessionData.model_validate(data)
        max_age = (options.max_age if options and options.max_age else None) or self.max_age

        with tracer.start_as_current_span("session.create") as span:
            session_id = self.generate_session_id()
            record = SessionRecord.create(session_id, data)
            span.set_attribute("session.user_id", data.user_id)

            await self.cache.set(
                self._session_key(session_id),
                record.to_dict(),
                ttl=max_age,
                tags=self._session_tags(data.user_id),
            )
            await self._add_user_session(data.user_id, session_id, max_age)
            self._known_users.add(data.user_id)

            logger.info(
                f"Session created for user {data.user_id}",
                extra={"user_id": data.user_id, "ttl": max_age},
            )
            return session_id

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        """
        Get a live session.

        Returns:
            Session record, or None when absent, unreadable or idle for
            longer than the max age (the idle session is destroyed)
        """
        data = await self.cache.get(self._session_key(session_id))
        if data is None:
            return None

        try:
            record = SessionRecord.from_dict(data)
        except (TypeError, AttributeError) as e:
            logger.error(f"Corrupt session record {session_id[:8]}...: {e}")
            await self.cache.delete(self._session_key(session_id))
            return None

        if record.is_idle(self.max_age):
            logger.info(
                f"Session idle timeout for user {record.user_id}",
                extra={"user_id": record.user_id},
            )
            await self.destroy_session(session_id)
            return None

        return record

    async def touch_session(
        self, session_id: str, patch: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Refresh last activity, merging ``patch`` into the record."""
        record = await self.get_session(session_id)
        if record is None:
            return False

        updated = record.touched(patch)
        await self.cache.set(
            self._session_key(session_id),
            updated.to_dict(),
            ttl=self.max_age,
            tags=self._session_tags(updated.user_id),
        )
        return True

    async def destroy_session(self, session_id: str) -> bool:
        """
        Destroy one session.

        Returns:
            True if the session existed, False otherwise
        """
        data = await self.cache.get(self._session_key(session_id))
        if data is None:
            return False

        await self.cache.delete(self._session_key(session_id))

        user_id = data.get("user_id") if isinstance(data, dict) else None
        if user_id:
            await self._remove_user_session(user_id, session_id)

        logger.info(
            f"Session destroyed for user {user_id}", extra={"user_id": user_id}
        )
        return True

    async def destroy_user_sessions(self, user_id: str) -> int:
        """
        Destroy every session of a user and drop the user's index.

        Sessions missing from the index are caught through the
        ``user:<user_id>`` tag.

        Returns:
            Number of indexed sessions destroyed
        """
        with tracer.start_as_current_span("session.destroy_user_sessions") as span:
            span.set_attribute("session.user_id", user_id)
            destroyed = 0

            for session_id in await self._read_index(user_id):
                key = self._session_key(session_id)
                if await self.cache.get(key) is not None:
                    await self.cache.delete(key)
                    destroyed += 1

            await self.cache.delete(self._index_key(user_id))
            await self.cache.invalidate_tag(f"user:{user_id}")
            self._known_users.discard(user_id)

            span.set_attribute("session.destroyed_count", destroyed)
            logger.info(
                f"All sessions destroyed for user {user_id}",
                extra={"user_id": user_id, "destroyed_count": destroyed},
            )
            return destroyed

    async def get_user_sessions(self, user_id: str) -> List[str]:
        """
        Live session ids of a user, oldest first.

        Ids that no longer resolve are pruned and the index rewritten.
        """
        indexed = await self._read_index(user_id)
        live = [sid for sid in indexed if await self.get_session(sid) is not None]

        if len(live) != len(indexed):
            await self._write_index(user_id, live, self.max_age)
        return live

    async def get_session_stats(self) -> Dict[str, Any]:
        """Sessions known to this process plus sessions cache stats."""
        total = 0
        active_users = 0
        for user_id in list(self._known_users):
            count = len(await self.get_user_sessions(user_id))
            total += count
            if count:
                active_users += 1

        return {
            "total_sessions": total,
            "active_users": active_users,
            "max_concurrent_sessions": self.max_concurrent,
            "cache_stats": self.cache.get_stats(),
        }

    async def cleanup_expired_sessions(self) -> int:
        """
        Prune dead ids from the indexes of users known to this process.

        Returns:
            Number of index entries removed
        """
        cleaned = 0
        for user_id in list(self._known_users):
            indexed = await self._read_index(user_id)
            live = await self.get_user_sessions(user_id)
            cleaned += len(indexed) - len(live)
            if not live:
                self._known_users.discard(user_id)

        logger.info(
            f"Session cleanup completed, {cleaned} entries removed",
            extra={"cleaned_count": cleaned},
        )
        return cleaned

    async def _read_index(self, user_id: str) -> List[str]:
        sessions = await self.cache.get(self._index_key(user_id))
        if not isinstance(sessions, list):
            return []
        return [str(sid) for sid in sessions]

    async def _write_index(self, user_id: str, sessions: List[str], ttl: int) -> None:
        if not sessions:
            await self.cache.delete(self._index_key(user_id))
            return
        await self.cache.set(
            self._index_key(user_id), sessions, ttl=ttl, tags=[f"user:{user_id}"]
        )

    async def _add_user_session(
        self, user_id: str, session_id: str, ttl: int
    ) -> None:
        # Read-modify-write; concurrent creates for one user may lose an update
        sessions = await self.get_user_sessions(user_id)

        while len(sessions) >= self.max_concurrent:
            oldest = sessions.pop(0)
            await self.cache.delete(self._session_key(oldest))
            logger.info(
                f"Session limit reached for user {user_id}, evicted oldest session",
                extra={"user_id": user_id, "max_sessions": self.max_concurrent},
            )

        sessions.append(session_id)
        await self._write_index(user_id, sessions, max(ttl, self.max_age))

    async def _remove_user_session(self, user_id: str, session_id: str) -> None:
        sessions = await self._read_index(user_id)
        remaining = [sid for sid in sessions if sid != session_id]
        if len(remaining) != len(sessions):
            await self._write_index(user_id, remaining, self.max_age)
