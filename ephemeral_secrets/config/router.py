"""
Admin routes for reading and replacing the plugin configuration.
"""

from typing import Any, Dict
from loguru import logger
from fastapi import APIRouter, Body, Depends
from ephemeral_secrets.dependencies import current_admin_id, get_plugin, raise_for_error
from ephemeral_secrets.secret.exceptions import SecretError

router = APIRouter()


@router.get("")
async def get_configuration(
    _: str = Depends(current_admin_id),
    plugin=Depends(get_plugin),
):
    return plugin.config.get().model_dump(by_alias=True)


@router.put("")
async def update_configuration(
    values: Dict[str, Any] = Body(...),
    user_id: str = Depends(current_admin_id),
    plugin=Depends(get_plugin),
):
    """
    Validate and swap in a new configuration; secrets created afterwards use it.
    """
    merged = {**plugin.config.get().model_dump(by_alias=True), **values}
    try:
        config = plugin.on_configuration_change(merged)
    except SecretError as exc:
        raise_for_error(exc)
    logger.info(f"Configuration changed by {user_id=}")
    return config.model_dump(by_alias=True)
