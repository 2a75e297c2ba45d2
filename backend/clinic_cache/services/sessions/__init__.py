from .cookies import SessionCookies
from .session_manager import SessionManager

__all__ = ["SessionCookies", "SessionManager"]
