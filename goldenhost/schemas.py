from pydantic import BaseModel
from typing import Any, Dict, Optional


class InboundMessage(BaseModel):
    message_id: Optional[str] = None
    conversation_id: str
    text: str
    display_name: str = "Unknown"
    message_type: str = "text"
    phone_number_id: Optional[str] = None
    timestamp: Optional[str] = None
    media_id: Optional[str] = None
    mime_type: Optional[str] = None
    filename: Optional[str] = None


class WebhookResult(BaseModel):
    status: str
    message: str
    processed: int = 0


class ServiceInfo(BaseModel):
    status: str
    service: str
    version: str


class SendMessageRequest(BaseModel):
    to: Optional[str] = None
    message: Optional[str] = None
    type: str = "text"


class SendMessageResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    data: Dict[str, Any] = {}
