class GoldenHostError(Exception):
    """Base class for errors raised by the Golden Host backend"""


class WorkflowDefinitionError(GoldenHostError):
    """The chatbot workflow definition could not be loaded"""


class MessagingError(GoldenHostError):
    """An outbound WhatsApp message could not be delivered"""

    def __init__(self, message: str, code: str = "unknown"):
        super().__init__(message)
        self.code = code
