"""Recipe Chat API - a recipe assistant for web chat, voice and WhatsApp."""

__version__ = "1.0.0"

from .api import app, create_app  # noqa: E402
from .chat import ChatService  # noqa: E402
from .factory import ServiceFactory, Services  # noqa: E402

__all__ = [
    "ChatService",
    "ServiceFactory",
    "Services",
    "app",
    "create_app",
]
