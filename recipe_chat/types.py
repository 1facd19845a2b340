"""Type definitions for the recipe chat service."""

from typing import Literal

from typing_extensions import TypedDict

Role = Literal["user", "assistant"]


class ChatTurn(TypedDict):
    """One message of a conversation as sent to the model."""

    role: Role
    content: str


class RecipeRecord(TypedDict):
    """A recipe as served by the content source."""

    id: str
    title: str
    url: str
    excerpt: str
    published_at: str


class ProductRecord(TypedDict, total=False):
    """A recommendable product. ``review_url`` always points at the site."""

    id: str
    name: str
    category: str
    context: str
    review_url: str


class Branding(TypedDict, total=False):
    """Site branding metadata."""

    site_name: str
    bot_name: str
    tagline: str
    logo_url: str


class ChannelUsage(TypedDict):
    """Aggregated usage for one channel."""

    today: int
    week: int
    month: int
    last_active: str | None


class HealthStatus(TypedDict):
    """Health status of system components."""

    recipes: int
    products: int
    branding: bool
    cache_age_seconds: int | None
    llm_configured: bool
    whatsapp_configured: bool
    tts_configured: bool
