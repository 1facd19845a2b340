"""Request and response models using Pydantic."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from .language import normalize_phone

MAX_REQUEST_MESSAGES = 50
MAX_MESSAGE_CHARS = 4000
MAX_SUBSCRIBERS = 10000


class ChatTurnIn(BaseModel):
    """A single message of the client-held conversation."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_CHARS)

    @field_validator("content", mode="before")
    @classmethod
    def validate_content(cls, value: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise PydanticCustomError(
                "empty_content", "Message content cannot be empty", {"input": value}
            )
        return value.strip()


class ChatRequest(BaseModel):
    """Body of POST /chat."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatTurnIn] = Field(..., min_length=1, max_length=MAX_REQUEST_MESSAGES)
    lang: str | None = Field(None, max_length=10)
    page_title: str | None = Field(None, alias="pageTitle", max_length=300)
    is_recipe: bool = Field(False, alias="isRecipe")
    session_id: str | None = Field(None, alias="sessionId", max_length=100)
    voice_mode: bool = Field(False, alias="voiceMode")

    @field_validator("messages")
    @classmethod
    def validate_last_message(cls, value: list[ChatTurnIn]) -> list[ChatTurnIn]:
        if value[-1].role != "user":
            raise PydanticCustomError(
                "last_not_user", "The last message must come from the user", {}
            )
        return value

    @property
    def last_user_message(self) -> str:
        return self.messages[-1].content


class ChatReply(BaseModel):
    """Response of POST /chat."""

    reply: str


class VoiceRequest(BaseModel):
    """Body of POST /voice."""

    text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_CHARS)
    lang: str | None = Field(None, max_length=10)
    provider: str | None = Field(None, max_length=20)


class BroadcastType(str, Enum):
    WEEKLY_RECIPES = "weekly_recipes"
    WEEKLY_AFFILIATE = "weekly_affiliate"


class Subscriber(BaseModel):
    """A broadcast recipient."""

    phone: str = Field(..., min_length=6, max_length=20)
    name: str | None = Field(None, max_length=100)
    lang: str | None = Field(None, max_length=10)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        digits = normalize_phone(value)
        if len(digits) < 6:
            raise PydanticCustomError(
                "invalid_phone", "Phone number must contain at least 6 digits", {"input": value}
            )
        return digits


class FeaturedRecipe(BaseModel):
    """A recipe passed explicitly to the weekly recipes broadcast."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    title: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    excerpt: str = ""


class PinnedProduct(BaseModel):
    """Admin-curated product text, sent without model generation."""

    name: str = Field(..., min_length=1, max_length=200)
    url: str = Field(..., min_length=1)
    text: str | None = Field(None, max_length=1000)
    emoji: str = "⭐"


class BroadcastRequest(BaseModel):
    """Body of POST /broadcast."""

    model_config = ConfigDict(populate_by_name=True)

    type: BroadcastType
    subscribers: list[Subscriber] = Field(..., max_length=MAX_SUBSCRIBERS)
    recipes: list[FeaturedRecipe] | None = None
    pinned_product: PinnedProduct | None = None
    bot_name: str | None = Field(None, alias="botName", max_length=50)


class BroadcastResult(BaseModel):
    """Outcome of one broadcast invocation."""

    sent: int
    total: int
    skipped: int = 0
    failed: int = 0
    duplicate: bool = False
