from abc import ABC, abstractmethod
from typing import List, Optional

from goldenhost.logging import conversation_logger, log_exception, setup_logger
from goldenhost.services.messaging.client import MessagingClient, extract_message_id
from goldenhost.services.messaging.store import ConversationStore, NullConversationStore
from goldenhost.services.types import ButtonItem, InteractiveList, MessageRecord

MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20


class OutboundChannel(ABC):
    """
    Transport used by the chatbot to reach a conversation.

    Every method returns the provider message id when one is known. Delivery
    failures are raised, the interpreter handles them at the step boundary.
    """

    @abstractmethod
    async def send_text(self, recipient: str, text: str) -> Optional[str]:
        pass

    @abstractmethod
    async def send_choice_buttons(
        self, recipient: str, text: str, options: List[str]
    ) -> Optional[str]:
        pass

    @abstractmethod
    async def send_selectable_list(
        self, recipient: str, interactive: InteractiveList
    ) -> Optional[str]:
        pass


class WhatsAppChannel(OutboundChannel):
    """Sends chatbot prompts through WhatsApp and records them as bot messages"""

    def __init__(
        self,
        client: MessagingClient,
        store: Optional[ConversationStore] = None,
        channel_name: str = "whatsapp_meta",
    ):
        self.client = client
        self.store = store or NullConversationStore()
        self.channel_name = channel_name
        self.logger = setup_logger(__name__)

    async def send_text(self, recipient: str, text: str) -> Optional[str]:
        response = await self.client.send_message(text, recipient)
        message_id = extract_message_id(response)
        await self._record(recipient, text, message_id)
        return message_id

    async def send_choice_buttons(
        self, recipient: str, text: str, options: List[str]
    ) -> Optional[str]:
        if not options or len(options) > MAX_BUTTONS:
            raise ValueError(
                f"Reply buttons need 1 to {MAX_BUTTONS} options, got {len(options)}"
            )
        buttons: List[ButtonItem] = [
            {"id": f"opt_{i}", "title": option[:MAX_BUTTON_TITLE]}
            for i, option in enumerate(options)
        ]
        response = await self.client.send_interactive_buttons(
            body_text=text, buttons=buttons, phone_number=recipient
        )
        message_id = extract_message_id(response)
        await self._record(recipient, f"{text}\n{' | '.join(options)}", message_id)
        return message_id

    async def send_selectable_list(
        self, recipient: str, interactive: InteractiveList
    ) -> Optional[str]:
        response = await self.client.send_interactive_list(interactive, recipient)
        message_id = extract_message_id(response)
        body_text = (interactive.get("body") or {}).get("text") or "[Interactive List]"
        await self._record(recipient, body_text, message_id)
        return message_id

    async def _record(
        self, recipient: str, content: str, message_id: Optional[str]
    ) -> None:
        record: MessageRecord = {
            "id": message_id,
            "sender": "bot",
            "to": recipient,
            "content": content,
            "type": "text",
            "status": "sent",
            "channel": self.channel_name,
        }
        try:
            await self.store.append(recipient, record)
        except Exception as e:
            # The message already went out; a failed write must not stop the bot
            log_exception(
                conversation_logger(self.logger, recipient), "Error saving bot message", e
            )
