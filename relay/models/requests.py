"""Request bodies of the JSON API"""
from pydantic import BaseModel, Field, field_validator

from relay.constants import MAX_SESSION_ID_LENGTH, MAX_USERNAME_LENGTH


class SessionRequest(BaseModel):
    """Body carrying the checkout session reference"""
    session_id: str = Field(..., min_length=1, max_length=MAX_SESSION_ID_LENGTH)

    @field_validator("session_id", mode="before")
    @classmethod
    def strip_session_id(cls, v):
        return v.strip() if isinstance(v, str) else v


class GrantRoleRequest(SessionRequest):
    username: str = Field(..., min_length=1, max_length=MAX_USERNAME_LENGTH)

    @field_validator("username", mode="before")
    @classmethod
    def normalize_username(cls, v):
        """Accepts '@name' as well as 'name'"""
        if isinstance(v, str):
            return v.strip().lstrip("@").strip()
        return v
