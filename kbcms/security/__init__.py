"""Security modules for the knowledge base CMS."""

from kbcms.security.headers import SecurityHeadersMiddleware
from kbcms.security.logging import RequestLogMiddleware, configure_logging
from kbcms.security.sessions import ServerSession, SessionMiddleware, SessionStore

__all__ = [
    "SecurityHeadersMiddleware",
    "RequestLogMiddleware",
    "configure_logging",
    "ServerSession",
    "SessionMiddleware",
    "SessionStore",
]
