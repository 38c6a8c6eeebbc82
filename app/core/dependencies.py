"""
Dependency injection for FastAPI application.

Components are built once in the application lifespan and kept on
``app.state``; these providers hand them to route handlers.
"""

from fastapi import Request

from app.core.config import Settings
from app.core.exceptions import ServiceUnavailableError
from app.services.dispatcher import MessageDispatcher


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_dispatcher(request: Request) -> MessageDispatcher:
    """
    Get the running message dispatcher.

    Raises:
        ServiceUnavailableError: If startup has not finished building it
    """
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise ServiceUnavailableError("Message Dispatcher", detail="Dispatcher not started")
    return dispatcher
