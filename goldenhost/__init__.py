"""
Golden Host: WhatsApp Business webhook backend.

Receives WhatsApp messages, records conversations and drives a scripted
chatbot defined as a static workflow tree.
"""

__version__ = "0.1.0"
