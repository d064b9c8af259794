import re

from goldenhost.logging import conversation_logger, log_exception, setup_logger
from goldenhost.schemas import SendMessageResult
from goldenhost.services.messaging.client import MessagingClient, extract_message_id
from goldenhost.services.messaging.store import ConversationStore

logger = setup_logger(__name__)

PHONE_SEPARATORS = re.compile(r"[\s+\-]")


def normalize_phone(phone: str) -> str:
    """Strip spaces, `+` and dashes: '+966 50-000' becomes '96650000'"""
    return PHONE_SEPARATORS.sub("", phone)


async def send_agent_message(
    client: MessagingClient, store: ConversationStore, to: str, message: str
) -> SendMessageResult:
    """
    Send a text reply written by a support agent and record it.

    Raises:
        MessagingError: if WhatsApp rejects the message or cannot be reached
    """
    phone = normalize_phone(to)
    response = await client.send_message(message, phone)
    message_id = extract_message_id(response)

    try:
        await store.append(
            phone,
            {
                "id": message_id,
                "sender": "employee",
                "to": phone,
                "content": message,
                "type": "text",
                "status": "sent",
                "channel": "whatsapp_meta",
            },
        )
    except Exception as e:
        log_exception(conversation_logger(logger, phone), "Error saving agent message", e)

    return SendMessageResult(success=True, message_id=message_id, data=response)
