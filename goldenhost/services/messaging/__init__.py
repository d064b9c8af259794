"""
WhatsApp messaging for the Golden Host backend.

This package sends messages through the WhatsApp Cloud API and records
inbound and outbound messages per conversation.
"""

from goldenhost.services.messaging.client import MessagingClient, WhatsApp
from goldenhost.services.messaging.store import (
    ConversationStore,
    InMemoryConversationStore,
    NullConversationStore,
)

__all__ = [
    "MessagingClient",
    "WhatsApp",
    "ConversationStore",
    "InMemoryConversationStore",
    "NullConversationStore",
]
