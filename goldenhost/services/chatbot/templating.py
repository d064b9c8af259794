import re
from typing import Optional

from goldenhost.services.chatbot.session import Session

CONTACT_PLACEHOLDERS = ("name", "phone_number", "email")
VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def substitute(text: Optional[str], session: Session) -> str:
    """
    Fill `{{...}}` placeholders from the session.

    Contact placeholders (`{{contact.name}}`, `{{contact.phone_number}}`,
    `{{contact.email}}`) always resolve, to an empty string when unset.
    `{{identifier}}` resolves from session variables and is left as is when
    the variable was never set.
    """
    if not text:
        return ""

    for field_name in CONTACT_PLACEHOLDERS:
        placeholder = "{{contact.%s}}" % field_name
        if placeholder in text:
            text = text.replace(placeholder, session.contact.get(field_name))

    def _variable(match: re.Match) -> str:
        value = session.variables.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return VARIABLE_PATTERN.sub(_variable, text)
