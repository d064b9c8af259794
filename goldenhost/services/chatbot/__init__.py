"""
Workflow chatbot.

Loads a static workflow tree and walks each WhatsApp conversation through it,
keeping per-conversation session state in memory.
"""

from goldenhost.services.chatbot.interpreter import StepInterpreter
from goldenhost.services.chatbot.manager import ChatbotManager, build_chatbot
from goldenhost.services.chatbot.session import Session, SessionRegistry
from goldenhost.services.chatbot.workflow import Workflow, load_workflow, load_workflow_file

__all__ = [
    "ChatbotManager",
    "Session",
    "SessionRegistry",
    "StepInterpreter",
    "Workflow",
    "build_chatbot",
    "load_workflow",
    "load_workflow_file",
]
