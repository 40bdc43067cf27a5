"""
Secret record and request/response shapes.
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Secret(BaseModel):
    """
    A one-shot message with per-viewer acknowledgement and a hard lifetime.

    Unknown fields are ignored and missing ones default to zero values, so
    records written by older or newer versions still load.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    user_id: str = ""
    channel_id: str = ""
    root_id: str = ""
    message: str = ""
    viewed_by: List[str] = Field(default_factory=list)
    created_at: int = 0
    expires_at: int = 0

    @field_validator("viewed_by", mode="before")
    @classmethod
    def dedupe_viewers(cls, value):
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(dict.fromkeys(value))
        return value

    @field_validator("root_id", "user_id", "channel_id", "message", mode="before")
    @classmethod
    def null_to_empty(cls, value):
        return "" if value is None else value

    def is_expired(self, now_ms: int) -> bool:
        # A record without an expiry never expires.
        return self.expires_at > 0 and now_ms >= self.expires_at

    def has_viewed(self, user_id: str) -> bool:
        return user_id in self.viewed_by

    def with_viewer(self, user_id: str) -> "Secret":
        if self.has_viewed(user_id):
            return self.model_copy(deep=True)
        return self.model_copy(update={"viewed_by": [*self.viewed_by, user_id]}, deep=True)

    def serialize(self) -> bytes:
        return self.model_dump_json().encode()

    @classmethod
    def deserialize(cls, data: bytes) -> "Secret":
        return cls.model_validate_json(data)


class SecretArgs(BaseModel):
    channel_id: str = ""
    root_id: Optional[str] = ""
    message: str = ""


class SecretViewedArgs(BaseModel):
    secret_id: str = ""


class SecretResponse(BaseModel):
    message: str
    allow_copy: bool
