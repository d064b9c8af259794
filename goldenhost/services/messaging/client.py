"""
WhatsApp messaging client for sending chatbot prompts.

This module wraps the WhatsApp Business Cloud API `/messages` endpoint,
allowing the application to send text messages and interactive elements
(reply buttons and lists).
"""

from __future__ import annotations
import httpx
from typing import Dict, Any, Optional, List
from goldenhost.exceptions import MessagingError
from goldenhost.logging import setup_logger
from goldenhost.services.types import ButtonItem, InteractiveList


class MessagingClient:
    """
    Base class for messaging clients defining the interface for sending messages.

    Implementations raise MessagingError when the platform rejects a message
    or cannot be reached.
    """

    def __init__(self):
        self.logger = setup_logger(__name__)

    async def send_message(self, message: str, phone_number: str) -> Dict[str, Any]:
        """
        Send a text message to a recipient.

        Args:
            message: Text content to send
            phone_number: Recipient phone number

        Returns:
            Response data from the messaging platform
        """
        raise NotImplementedError("Subclasses must implement this method")

    async def send_interactive_buttons(
        self,
        body_text: str,
        buttons: List[ButtonItem],
        phone_number: str,
        header_text: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send quick-reply buttons to a recipient.

        Args:
            body_text: Main message content
            buttons: Up to three reply buttons
            phone_number: Recipient phone number
            header_text: Optional text header

        Returns:
            Response data from the messaging platform
        """
        raise NotImplementedError("Subclasses must implement this method")

    async def send_interactive_list(
        self, interactive: InteractiveList, phone_number: str
    ) -> Dict[str, Any]:
        """
        Send an interactive list to a recipient.

        Args:
            interactive: Platform `interactive` object (type, body, action.sections)
            phone_number: Recipient phone number

        Returns:
            Response data from the messaging platform
        """
        raise NotImplementedError("Subclasses must implement this method")


class WhatsApp(MessagingClient):
    """WhatsApp messaging client implementation using the WhatsApp Business API."""

    def __init__(
        self,
        token: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        base_url: str = "https://graph.facebook.com/v18.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        super().__init__()
        self.token = token
        self.phone_number_id = phone_number_id
        self.base_url = base_url.rstrip("/")
        self.url = f"{self.base_url}/{phone_number_id}/messages"
        self.headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
        }
        self.transport = transport
        self.timeout = timeout

    async def send_message(
        self,
        message: str,
        phone_number: str,
        recipient_type: str = "individual",
        preview_url: bool = False,
    ) -> Dict[str, Any]:
        """Send a text message to a WhatsApp user."""

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": recipient_type,
            "to": phone_number,
            "type": "text",
            "text": {"preview_url": preview_url, "body": message},
        }
        return await self._post(payload, phone_number, "message")

    async def send_interactive_buttons(
        self,
        body_text: str,
        buttons: List[ButtonItem],
        phone_number: str,
        header_text: Optional[str] = None,
        recipient_type: str = "individual",
    ) -> Dict[str, Any]:
        """Send interactive reply buttons to a WhatsApp user."""

        if len(buttons) > 3:
            raise MessagingError(
                f"WhatsApp allows at most 3 reply buttons, got {len(buttons)}",
                code="too_many_buttons",
            )

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": recipient_type,
            "to": phone_number,
            "type": "interactive",
            "interactive": {
                "type": "button",
                "body": {"text": body_text},
                "action": {
                    "buttons": [
                        {
                            "type": "reply",
                            "reply": {"id": btn["id"], "title": btn["title"]},
                        }
                        for btn in buttons
                    ]
                },
            },
        }

        if header_text:
            payload["interactive"]["header"] = {"type": "text", "text": header_text}

        return await self._post(payload, phone_number, "interactive buttons")

    async def send_interactive_list(
        self,
        interactive: InteractiveList,
        phone_number: str,
        recipient_type: str = "individual",
    ) -> Dict[str, Any]:
        """Send an interactive list to a WhatsApp user."""

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": recipient_type,
            "to": phone_number,
            "type": "interactive",
            "interactive": interactive,
        }
        return await self._post(payload, phone_number, "interactive list")

    async def _post(
        self, payload: Dict[str, Any], phone_number: str, content_type: str
    ) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=self.timeout
            ) as client:
                response = await client.post(
                    self.url, headers=self.headers, json=payload
                )
        except httpx.HTTPError as e:
            error_msg = f"Exception sending {content_type} to {phone_number}: {e}"
            self.logger.error(error_msg)
            raise MessagingError(error_msg, code="transport") from e

        try:
            response_data = response.json()
        except ValueError:
            response_data = {"error": {"message": response.text}}

        if response.status_code != 200:
            self._handle_api_error(response_data, phone_number, content_type)
            error = self._format_error_message(response_data)
            raise MessagingError(error["message"], code=error["code"])

        self.logger.info(f"Sent {content_type} to {phone_number}")
        return response_data

    def _handle_api_error(
        self,
        response_data: Dict[str, Any],
        phone_number: str,
        content_type: str = "message",
    ) -> None:
        """Handle and log WhatsApp API errors."""

        error_info = response_data.get("error", {})
        error_code = error_info.get("code")
        error_message = error_info.get("message", "Unknown error")

        if error_code == 131030:
            # Test numbers must be registered in the Meta developer portal
            self.logger.error(
                f"WhatsApp API Error {error_code}: recipient {phone_number} "
                "is not in the allowed list"
            )
        else:
            self.logger.error(
                f"Failed to send {content_type} to {phone_number}: {error_message} (Code: {error_code})"
            )

    def _format_error_message(self, response_data: Dict[str, Any]) -> Dict[str, str]:
        """Format API error message for consistent error reporting."""

        error_info = response_data.get("error", {})
        error_code = error_info.get("code", "unknown")
        error_message = error_info.get("message", "Unknown error")

        return {"code": str(error_code), "message": error_message}


def extract_message_id(response_data: Dict[str, Any]) -> Optional[str]:
    """Return the provider message id (`wamid...`) from a send response."""
    messages = response_data.get("messages") or []
    if messages and isinstance(messages[0], dict):
        return messages[0].get("id")
    return None
