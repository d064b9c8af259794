from typing import Any, Dict, List, Literal, Optional, TypedDict


MessageDirection = Literal["customer", "bot", "employee"]


class ButtonItem(TypedDict):
    """Quick-reply button sent in an interactive button message"""

    id: str
    title: str


class ListRow(TypedDict, total=False):
    """Row of an interactive list section"""

    id: str
    title: str
    description: str


class ListSection(TypedDict, total=False):
    """Section of an interactive list"""

    title: str
    rows: List[ListRow]


class InteractiveList(TypedDict, total=False):
    """WhatsApp `interactive` object of type list"""

    type: str
    header: Dict[str, Any]
    body: Dict[str, str]
    footer: Dict[str, str]
    action: Dict[str, Any]


class MessageRecord(TypedDict, total=False):
    """Message appended to the conversation store"""

    id: Optional[str]
    sender: MessageDirection
    to: str
    content: str
    type: str
    status: str
    channel: str
    customer_name: str
    created_at: str
