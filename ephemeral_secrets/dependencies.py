"""
Shared request dependencies: plugin lookup, authentication, deadlines and error mapping.
"""

import asyncio
from typing import Awaitable, NoReturn, TypeVar
from loguru import logger
from fastapi import Depends, Header, HTTPException, Request, status
from ephemeral_secrets.config import settings
from ephemeral_secrets.constants import USER_ID_HEADER
from ephemeral_secrets.host import HostError, HostNotFound
from ephemeral_secrets.secret.exceptions import (
    Corrupt,
    HostUnavailable,
    InvalidInput,
    InvalidParent,
    NotFound,
    SecretError,
    StoreUnavailable,
)

T = TypeVar("T")


def get_plugin(request: Request):
    """
    The plugin root created at startup.
    """
    plugin = getattr(request.app.state, "plugin", None)
    if plugin is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Plugin is not active",
        )
    return plugin


async def current_user_id(
    user_id: str | None = Header(None, alias=USER_ID_HEADER),
) -> str:
    """
    The host injects the authenticated user's id; no id, no access.
    """
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized",
        )
    return user_id


async def current_admin_id(
    user_id: str = Depends(current_user_id),
    plugin=Depends(get_plugin),
) -> str:
    """
    Only system admins may change the plugin configuration.
    """
    try:
        user = await plugin.host.get_user(user_id)
    except HostNotFound:
        user = None
    except HostError as exc:
        logger.error(f"Failed to look up {user_id=}: {exc}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if user is None or not user.is_system_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="System admin permissions are required",
        )
    return user_id


async def with_deadline(plugin, coro: Awaitable[T], timeout: float | None = None) -> T:
    """
    Await a service call under the request deadline.  If the deadline passes
    the client gets a 504, but the call itself keeps running to completion.
    """
    timeout = settings.request_timeout if timeout is None else timeout
    task = asyncio.ensure_future(coro)
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.CancelledError:
        plugin.tasks.adopt(task)
        raise
    except asyncio.TimeoutError:
        plugin.tasks.adopt(task)
        logger.warning(f"Request deadline of {timeout}s exceeded, finishing in background")
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Request timed out",
        )


def raise_for_error(exc: SecretError) -> NoReturn:
    """
    Translate service errors into HTTP responses.
    """
    if isinstance(exc, (InvalidInput, InvalidParent)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Secret not found")
    if isinstance(exc, HostUnavailable):
        logger.error(f"Host failure: {exc}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, (StoreUnavailable, Corrupt)):
        logger.error(f"Store failure: {exc}")
    else:
        logger.error(f"Unexpected secret error: {exc}")
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
