"""
Slash command payloads.
"""

from typing import Literal
from pydantic import BaseModel


class CommandArgs(BaseModel):
    user_id: str = ""
    channel_id: str = ""
    root_id: str = ""
    team_id: str = ""
    command: str = ""
    text: str = ""

    @property
    def body(self) -> str:
        """
        The message typed after the trigger.
        """
        if self.text:
            return self.text.strip()
        parts = self.command.strip().split(maxsplit=1)
        return parts[1].strip() if len(parts) > 1 else ""


class CommandResponse(BaseModel):
    response_type: Literal["ephemeral", "in_channel"] = "ephemeral"
    text: str
