"""
Routes for creating, viewing and closing secrets.
"""

from typing import Optional
import orjson as json
from loguru import logger
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from ephemeral_secrets.dependencies import (
    current_user_id,
    get_plugin,
    raise_for_error,
    with_deadline,
)
from ephemeral_secrets.secret.exceptions import HostUnavailable, SecretError
from ephemeral_secrets.secret.response import expired_response, revealed_response
from ephemeral_secrets.secret.schemas import Secret, SecretArgs, SecretViewedArgs
from ephemeral_secrets.secret.service import RevealStatus

router = APIRouter()


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{name} is required",
        )
    return value


async def _post_id_from_body(request: Request) -> Optional[str]:
    """
    Button clicks carry the clicked post's id in the JSON body.
    """
    body = await request.body()
    if not body:
        return None
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("post_id"), str):
        return payload["post_id"]
    return None


@router.post("", response_model=Secret)
async def create_secret(
    args: SecretArgs,
    user_id: str = Depends(current_user_id),
    plugin=Depends(get_plugin),
):
    """
    Create a secret and post its placeholder.
    """
    if not args.channel_id or not args.message:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="channel_id and message are required",
        )

    async def _create():
        secret = await plugin.service.create(user_id, args.channel_id, args.root_id, args.message)
        try:
            await plugin.service.create_placeholder(secret)
        except HostUnavailable as exc:
            # The record stays; the sweeper reaps it at expiry.
            logger.error(f"Failed to post placeholder for {secret.id=}: {exc}")
        return secret

    try:
        return await with_deadline(plugin, _create())
    except SecretError as exc:
        raise_for_error(exc)


@router.post("/viewed")
async def secret_viewed(
    args: SecretViewedArgs,
    user_id: str = Depends(current_user_id),
    plugin=Depends(get_plugin),
):
    """
    Acknowledge that the current user has seen a secret.
    """
    secret_id = _require(args.secret_id, "secret_id")
    try:
        await with_deadline(plugin, plugin.service.mark_viewed(user_id, secret_id))
    except SecretError as exc:
        raise_for_error(exc)
    return Response(status_code=status.HTTP_200_OK)


@router.post("/view")
async def view_secret(
    request: Request,
    secret_id: Optional[str] = None,
    action: Optional[str] = None,
    post_id: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    plugin=Depends(get_plugin),
):
    """
    Reveal a secret to the current user (the placeholder's view button).
    """
    secret_id = _require(secret_id, "secret_id")
    if action == "close":
        # Older placeholders routed their close button through this path.
        post_id = post_id or await _post_id_from_body(request)
        return await _close(plugin, user_id, secret_id, _require(post_id, "post_id"))

    try:
        outcome = await with_deadline(plugin, plugin.service.reveal(user_id, secret_id))
    except SecretError as exc:
        raise_for_error(exc)

    if outcome.status is RevealStatus.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Secret not found")
    if outcome.status is RevealStatus.EXPIRED:
        return expired_response()
    return revealed_response(
        outcome.secret,
        outcome.author,
        allow_copy=plugin.config.get().allow_copy_to_clipboard,
        plugin_id=plugin.service.plugin_id,
    )


@router.post("/close")
async def close_secret(
    request: Request,
    secret_id: Optional[str] = None,
    post_id: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    plugin=Depends(get_plugin),
):
    """
    Replace the revealed content with a closed state, for the current user only.
    """
    secret_id = _require(secret_id, "secret_id")
    post_id = post_id or await _post_id_from_body(request)
    return await _close(plugin, user_id, secret_id, _require(post_id, "post_id"))


async def _close(plugin, user_id: str, secret_id: str, post_id: str):
    try:
        return await with_deadline(plugin, plugin.service.close(user_id, secret_id, post_id))
    except SecretError as exc:
        raise_for_error(exc)
