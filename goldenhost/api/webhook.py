from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Response

from goldenhost.logging import setup_logger, log_exception
from goldenhost.schemas import InboundMessage, WebhookResult
from goldenhost.services.chatbot.manager import ChatbotManager
from goldenhost.services.messaging.store import ConversationStore

logger = setup_logger(__name__)

MEDIA_TYPES = ("image", "video", "audio", "document", "sticker")


def verify_webhook(
    hub_mode: Optional[str],
    hub_verify_token: Optional[str],
    hub_challenge: Optional[str],
    verify_token: str,
) -> Response:
    """
    Verify webhook subscription request from the WhatsApp API
    """
    if hub_mode == "subscribe" and hub_verify_token == verify_token:
        logger.info("Webhook verified successfully")
        return Response(content=hub_challenge or "", media_type="text/plain")

    logger.error(f"Webhook verification failed (mode: {hub_mode})")
    return Response(content="Invalid verification token", status_code=403)


async def handle_message(
    data: Dict[Any, Any],
    chatbot: ChatbotManager,
    store: ConversationStore,
    bot_phone_number_id: Optional[str] = None,
) -> WebhookResult:
    """
    Record every message in a webhook payload and hand it to the chatbot

    Messages sent to a number other than `bot_phone_number_id` are only
    recorded. When no bot number is configured every message reaches the bot.
    """
    if data.get("object") != "whatsapp_business_account":
        logger.error(f"Invalid object in webhook data: {data.get('object')}")
        return WebhookResult(status="error", message="Invalid object")

    processed = 0
    for message in extract_messages(data):
        try:
            await store.append(
                message.conversation_id,
                {
                    "id": message.message_id,
                    "sender": "customer",
                    "to": message.phone_number_id or "",
                    "content": message.text,
                    "type": message.message_type,
                    "status": "received",
                    "channel": "whatsapp_meta",
                    "customer_name": message.display_name,
                },
                customer_name=message.display_name,
            )
        except Exception as e:
            log_exception(
                logger, f"Error saving message from {message.conversation_id}", e
            )

        if bot_phone_number_id and message.phone_number_id != bot_phone_number_id:
            logger.debug(
                f"Message to {message.phone_number_id} is not for the chatbot number"
            )
        else:
            await chatbot.process_message(
                message.conversation_id, message.text, message.display_name
            )
        processed += 1

    if not processed:
        return WebhookResult(status="success", message="Non-message event processed")

    logger.info(f"Processed {processed} webhook message(s)")
    return WebhookResult(status="success", message="Message processed", processed=processed)


def extract_messages(data: Dict[Any, Any]) -> List[InboundMessage]:
    """
    Extract every inbound message from a webhook payload

    Status updates and other non-message changes produce nothing.
    """
    messages: List[InboundMessage] = []
    for entry in data.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field") != "messages":
                continue
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            contacts = value.get("contacts") or []

            for i, message in enumerate(value.get("messages") or []):
                sender_id = message.get("from")
                if not sender_id:
                    logger.error(f"Message without sender: {message.get('id')}")
                    continue
                contact = contacts[i] if i < len(contacts) else {}
                messages.append(
                    _to_inbound(message, contact, metadata.get("phone_number_id"))
                )
    return messages


def _to_inbound(
    message: Dict[str, Any], contact: Dict[str, Any], phone_number_id: Optional[str]
) -> InboundMessage:
    message_type = message.get("type", "unknown")
    inbound = InboundMessage(
        message_id=message.get("id"),
        conversation_id=message["from"],
        text=extract_message_content(message),
        display_name=(contact.get("profile") or {}).get("name") or "Unknown",
        message_type=message_type,
        phone_number_id=phone_number_id,
        timestamp=_format_timestamp(message.get("timestamp")),
    )

    if message_type in MEDIA_TYPES:
        media = message.get(message_type) or {}
        inbound.media_id = media.get("id")
        inbound.mime_type = media.get("mime_type")
        inbound.filename = media.get("filename")
    return inbound


def extract_message_content(message: Dict[str, Any]) -> str:
    """Text the chatbot sees for a message of any type"""
    message_type = message.get("type")
    body = message.get(message_type) or {}

    if message_type == "text":
        return body.get("body", "")
    if message_type in ("image", "video"):
        return body.get("caption", "")
    if message_type == "audio":
        return ""
    if message_type == "document":
        return body.get("filename") or "file"
    if message_type == "location":
        return f"[Location: {body.get('latitude')}, {body.get('longitude')}]"
    if message_type == "sticker":
        return "[Sticker]"
    if message_type == "button":
        return body.get("text") or "[Button Response]"
    if message_type == "interactive":
        return extract_interactive_message(body)
    return f"[Unsupported message type: {message_type}]"


def extract_interactive_message(interactive: Dict[str, Any]) -> str:
    """Title of the chosen reply button or list row"""
    for reply_key in ("button_reply", "list_reply"):
        title = (interactive.get(reply_key) or {}).get("title")
        if title:
            return title
    logger.warning(f"Unknown interactive format: {interactive}")
    return "[Interactive Response]"


def _format_timestamp(timestamp: Any) -> Optional[str]:
    try:
        return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).isoformat()
    except (TypeError, ValueError):
        return None
