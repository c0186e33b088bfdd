# mailgate/schemas.py
from typing import Annotated, Optional
from datetime import datetime, timezone

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PROMPT_NAME_MAX = 100
PROMPT_CONTENT_MAX = 4000
EMAIL_MESSAGE_MAX = 10000


def _as_utc(v: datetime) -> datetime:
    # stored timestamps are naive UTC; mark them so clients see the offset
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


UtcDateTime = Annotated[datetime, AfterValidator(_as_utc)]


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case accepted on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _not_blank(v: str, field: str) -> str:
    if v is None or not v.strip():
        raise ValueError(f"{field} is required")
    return v


class TokenRequest(ApiModel):
    # presence is checked by the handler so a missing key maps to 400, not 422
    api_key: Optional[str] = None


class TokenResponse(ApiModel):
    token: str
    expires_at: UtcDateTime


class PromptRequest(ApiModel):
    name: str = Field(..., max_length=PROMPT_NAME_MAX)
    content: str = Field(..., max_length=PROMPT_CONTENT_MAX)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v):
        return _not_blank(v, "name")

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v):
        return _not_blank(v, "content")


class PromptResponse(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              from_attributes=True)

    id: int
    name: str
    content: str
    is_active: bool
    created_at: UtcDateTime
    updated_at: Optional[UtcDateTime] = None


class EmailRequest(ApiModel):
    message: str = Field(..., max_length=EMAIL_MESSAGE_MAX)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v):
        return _not_blank(v, "message")


class EmailResponse(ApiModel):
    response: str
    request_id: int
    processed_at: UtcDateTime
