"""
Slash command execution.
"""

from loguru import logger
from ephemeral_secrets.command.schemas import CommandArgs, CommandResponse
from ephemeral_secrets.secret.exceptions import HostUnavailable, SecretError
from ephemeral_secrets.secret.service import SecretService

MISSING_MESSAGE_TEXT = "Please provide a message to be kept secret."
CREATED_TEXT = "Secret message created successfully!"


async def execute_command(service: SecretService, args: CommandArgs) -> CommandResponse:
    """
    `/secret <message>`: store the message and post its placeholder.
    """
    message = args.body
    if not message:
        return CommandResponse(text=MISSING_MESSAGE_TEXT)

    try:
        secret = await service.create(args.user_id, args.channel_id, args.root_id, message)
    except SecretError as exc:
        logger.warning(f"Slash command create failed for {args.user_id=}: {exc}")
        return CommandResponse(text=f"Error creating secret: {exc}")

    try:
        await service.create_placeholder(secret)
    except HostUnavailable as exc:
        return CommandResponse(text=f"Error creating post: {exc}")
    return CommandResponse(text=CREATED_TEXT)
