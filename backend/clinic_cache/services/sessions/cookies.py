"""
Session cookie helpers for HTTP handlers.
"""

import re
from typing import Optional

from ...core.config import Settings, settings as default_settings
from ...domain.cache.entities import SessionOptions


class SessionCookies:
    """Build and parse ``Set-Cookie``/``Cookie`` headers for the session id."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.name = self.settings.SESSION_COOKIE_NAME
        self._pattern = re.compile(rf"(?:^|;\s*){re.escape(self.name)}=([^;]+)")

    def session_id_from_cookie_header(self, header: Optional[str]) -> Optional[str]:
        """Extract the session id from a ``Cookie`` header, if present."""
        if not header:
            return None
        match = self._pattern.search(header)
        return match.group(1).strip() if match else None

    def create_session_cookie(
        self, session_id: str, options: Optional[SessionOptions] = None
    ) -> str:
        """``Set-Cookie`` value carrying a session id."""
        options = options or SessionOptions()
        max_age = options.max_age or self.settings.SESSION_MAX_AGE_SECONDS
        secure = (
            options.secure
            if options.secure is not None
            else self.settings.session_cookie_secure
        )
        same_site = options.same_site or self.settings.SESSION_COOKIE_SAMESITE

        cookie = f"{self.name}={session_id}; Max-Age={max_age}; Path=/; HttpOnly"
        if secure:
            cookie += "; Secure"
        if same_site:
            cookie += f"; SameSite={same_site}"
        return cookie

    def clear_session_cookie(self) -> str:
        """``Set-Cookie`` value that expires the session cookie."""
        return f"{self.name}=; Max-Age=0; Path=/"
