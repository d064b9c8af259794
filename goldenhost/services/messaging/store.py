from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from goldenhost.logging import setup_logger
from goldenhost.services.types import MessageRecord


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConversationStore(ABC):
    """
    Sink for inbound and outbound message records.

    The chatbot does not depend on anything written here; a store that drops
    every record is a valid implementation.
    """

    @abstractmethod
    async def append(
        self,
        conversation_id: str,
        record: MessageRecord,
        customer_name: Optional[str] = None,
    ) -> None:
        """Append a message record to a conversation"""

    async def list_conversations(self) -> List[Dict[str, Any]]:
        return []

    async def get_messages(self, conversation_id: str) -> List[MessageRecord]:
        return []


class NullConversationStore(ConversationStore):
    """Store that discards everything"""

    async def append(
        self,
        conversation_id: str,
        record: MessageRecord,
        customer_name: Optional[str] = None,
    ) -> None:
        return None


class InMemoryConversationStore(ConversationStore):
    """
    Process-local conversation store.

    Conversations and their messages are lost on restart. Useful when no
    database is configured and for tests.
    """

    def __init__(self):
        self.logger = setup_logger(__name__)
        self._conversations: Dict[str, Dict[str, Any]] = {}
        self._messages: Dict[str, List[MessageRecord]] = {}

    def _get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        if conversation_id not in self._conversations:
            now = _now_iso()
            self._conversations[conversation_id] = {
                "id": conversation_id,
                "customer_phone": conversation_id,
                "customer_name": "Unknown",
                "channel": "whatsapp_meta",
                "status": "open",
                "created_at": now,
                "updated_at": now,
                "unread_count": 0,
                "last_message": "",
                "last_message_time": None,
            }
            self._messages[conversation_id] = []
        return self._conversations[conversation_id]

    async def append(
        self,
        conversation_id: str,
        record: MessageRecord,
        customer_name: Optional[str] = None,
    ) -> None:
        conversation = self._get_conversation(conversation_id)
        now = _now_iso()
        if customer_name:
            conversation["customer_name"] = customer_name
        conversation["updated_at"] = now
        conversation["last_message"] = record.get("content", "")
        conversation["last_message_time"] = now
        if record.get("sender") == "customer":
            conversation["unread_count"] += 1

        stored: MessageRecord = {
            "id": record.get("id") or f"msg_{len(self._messages[conversation_id])}",
            "created_at": now,
        }
        stored.update({k: v for k, v in record.items() if k != "id"})
        self._messages[conversation_id].append(stored)
        self.logger.debug(
            f"Stored {record.get('sender', 'unknown')} message for {conversation_id}"
        )

    async def list_conversations(self) -> List[Dict[str, Any]]:
        return sorted(
            (dict(c) for c in self._conversations.values()),
            key=lambda c: c["updated_at"],
            reverse=True,
        )

    async def get_messages(self, conversation_id: str) -> List[MessageRecord]:
        """Messages of a conversation, oldest first; reading marks it read."""
        conversation = self._conversations.get(conversation_id)
        if conversation is not None:
            conversation["unread_count"] = 0
        return list(self._messages.get(conversation_id, []))
