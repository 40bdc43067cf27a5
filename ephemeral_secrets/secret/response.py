"""
Integration responses, i.e. what the host applies to the placeholder after a button click.
"""

from typing import Any, Dict, Optional
from ephemeral_secrets.constants import CLOSED_COLOR, SECRET_TITLE
from ephemeral_secrets.secret.schemas import Secret, SecretResponse
from ephemeral_secrets.secret.util import EXPIRED_TEXT, revealed_attachment


def integration_response(
    props: Dict[str, Any],
    post_id: Optional[str] = None,
    ephemeral_text: Optional[str] = None,
) -> Dict[str, Any]:
    update: Dict[str, Any] = {"props": props}
    if post_id:
        update["id"] = post_id
    response: Dict[str, Any] = {"update": update}
    if ephemeral_text:
        response["ephemeral_text"] = ephemeral_text
    return response


def status_response(
    text: str, post_id: Optional[str] = None, ephemeral_text: Optional[str] = None
) -> Dict[str, Any]:
    """
    Greyed-out placeholder carrying a single line of text.
    """
    props = {"attachments": [{"title": SECRET_TITLE, "text": text, "color": CLOSED_COLOR}]}
    return integration_response(props, post_id=post_id, ephemeral_text=ephemeral_text)


def revealed_response(
    secret: Secret, author: str, allow_copy: bool, plugin_id: str
) -> Dict[str, Any]:
    props = {
        "secret_id": secret.id,
        "secret": SecretResponse(message=secret.message, allow_copy=allow_copy).model_dump(),
        "attachments": [revealed_attachment(secret, author, plugin_id)],
    }
    return integration_response(props)


def expired_response(post_id: Optional[str] = None) -> Dict[str, Any]:
    return status_response(EXPIRED_TEXT, post_id=post_id, ephemeral_text=EXPIRED_TEXT)

