"""
Brokerage API Package.

FastAPI application exposing trade execution and account views.
"""

from .app import create_app, install_exception_handlers
from .auth import AuthenticatedUser, BearerTokenAuthenticator, get_current_user


__all__ = [
    "create_app",
    "install_exception_handlers",
    "AuthenticatedUser",
    "BearerTokenAuthenticator",
    "get_current_user",
]
