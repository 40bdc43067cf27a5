"""
Slash command endpoint, invoked by the chat host.
"""

import secrets
from typing import Optional
from fastapi import APIRouter, Depends, Form, Header, HTTPException, status
from ephemeral_secrets.config import settings
from ephemeral_secrets.constants import USER_ID_HEADER
from ephemeral_secrets.command.schemas import CommandArgs, CommandResponse
from ephemeral_secrets.command.util import execute_command
from ephemeral_secrets.dependencies import get_plugin, with_deadline

router = APIRouter()


def _authenticated_user(token: str, header_user_id: Optional[str], form_user_id: str) -> str:
    """
    Commands must carry either the configured verification token, or the
    host-injected user header (which then names the author).
    """
    if settings.command_token:
        if not secrets.compare_digest(token or "", settings.command_token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid command token",
            )
        return header_user_id or form_user_id
    if not header_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized",
        )
    return header_user_id


@router.post("/secret", response_model=CommandResponse)
async def secret_command(
    user_id: str = Form(""),
    channel_id: str = Form(""),
    root_id: str = Form(""),
    team_id: str = Form(""),
    command: str = Form(""),
    text: str = Form(""),
    token: str = Form(""),
    header_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
    plugin=Depends(get_plugin),
):
    user_id = _authenticated_user(token, header_user_id, user_id)
    if not user_id or not channel_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="user_id and channel_id are required",
        )
    args = CommandArgs(
        user_id=user_id,
        channel_id=channel_id,
        root_id=root_id,
        team_id=team_id,
        command=command,
        text=text,
    )
    return await with_deadline(plugin, execute_command(plugin.service, args))
