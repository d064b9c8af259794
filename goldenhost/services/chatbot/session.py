import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from goldenhost.logging import setup_logger


@dataclass
class Contact:
    name: str = ""
    phone_number: str = ""
    email: str = ""
    extra: Dict[str, str] = field(default_factory=dict)

    def set(self, field_name: str, value: str) -> None:
        """Write a contact field; unknown field names are kept in `extra`."""
        if field_name in ("name", "phone_number", "email"):
            setattr(self, field_name, value)
        else:
            self.extra[field_name] = value

    def get(self, field_name: str, default: str = "") -> str:
        if field_name in ("name", "phone_number", "email"):
            return getattr(self, field_name) or default
        return self.extra.get(field_name, default)


@dataclass
class Session:
    """Live interpreter state for one conversation."""

    conversation_id: str
    contact: Contact
    last_activity: float
    variables: Dict[str, str] = field(default_factory=dict)
    waiting_for_step_id: Optional[str] = None
    jump_counts: Dict[str, int] = field(default_factory=dict)
    invalid_attempts: Dict[str, int] = field(default_factory=dict)


class SessionRegistry:
    """
    In-memory map of conversation id to chatbot session.

    Sessions idle for longer than `idle_timeout` seconds are dropped the next
    time they are looked up; `purge_expired` does the same for every entry and
    is meant to be run periodically.
    """

    def __init__(
        self,
        idle_timeout: float = 30 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = setup_logger(__name__)
        self.idle_timeout = idle_timeout
        self.clock = clock
        self._sessions: Dict[str, Session] = {}

    def get(self, conversation_id: str) -> Optional[Session]:
        """
        Get the live session for a conversation and mark it active.

        Args:
            conversation_id: The conversation identifier (sender phone number)

        Returns:
            The session, or None if there is none or it has expired
        """
        session = self._sessions.get(conversation_id)
        if session is None:
            return None

        now = self.clock()
        if now - session.last_activity > self.idle_timeout:
            del self._sessions[conversation_id]
            self.logger.info(f"Chatbot session for {conversation_id} expired")
            return None

        session.last_activity = now
        return session

    def create(self, conversation_id: str, contact_name: str = "") -> Session:
        """
        Start a new session, replacing any existing one.

        Args:
            conversation_id: The conversation identifier (sender phone number)
            contact_name: Display name from the messaging platform profile

        Returns:
            The new session
        """
        session = Session(
            conversation_id=conversation_id,
            contact=Contact(name=contact_name, phone_number=conversation_id),
            last_activity=self.clock(),
        )
        self._sessions[conversation_id] = session
        self.logger.info(f"Created chatbot session for {conversation_id}")
        return session

    def delete(self, conversation_id: str) -> None:
        if self._sessions.pop(conversation_id, None) is not None:
            self.logger.info(f"Ended chatbot session for {conversation_id}")

    def purge_expired(self) -> int:
        """Drop every expired session and return how many were removed."""
        now = self.clock()
        expired = [
            conversation_id
            for conversation_id, session in self._sessions.items()
            if now - session.last_activity > self.idle_timeout
        ]
        for conversation_id in expired:
            del self._sessions[conversation_id]
        if expired:
            self.logger.info(f"Purged {len(expired)} expired chatbot sessions")
        return len(expired)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
