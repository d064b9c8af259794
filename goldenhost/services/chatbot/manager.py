import asyncio
from typing import Dict, Optional

from goldenhost.config import Settings
from goldenhost.logging import conversation_logger, log_exception, setup_logger
from goldenhost.services.chatbot.channel import WhatsAppChannel
from goldenhost.services.chatbot.interpreter import StepInterpreter
from goldenhost.services.chatbot.session import SessionRegistry
from goldenhost.services.chatbot.workflow import load_workflow_file
from goldenhost.services.messaging.client import MessagingClient, WhatsApp
from goldenhost.services.messaging.store import ConversationStore


class ChatbotManager:
    """
    Feeds inbound messages to the interpreter, one conversation at a time.

    Each conversation gets its own queue and processor task, so two messages
    from the same sender never run through the workflow concurrently while
    different senders proceed independently.
    """

    def __init__(self, interpreter: StepInterpreter):
        self.logger = setup_logger(__name__)
        self.interpreter = interpreter
        self.client_queues: Dict[str, asyncio.Queue] = {}
        self.client_processing_tasks: Dict[str, asyncio.Task] = {}

    @property
    def sessions(self) -> SessionRegistry:
        return self.interpreter.sessions

    async def process_message(
        self, client_id: str, message: str, display_name: str = "Unknown"
    ) -> None:
        """Queue an inbound message and make sure its processor is running."""
        queue = self._get_message_queue(client_id)
        await queue.put((message, display_name))

        task = self.client_processing_tasks.get(client_id)
        if task is None or task.done():
            self.logger.debug(f"Starting message processor for client {client_id}")
            self.client_processing_tasks[client_id] = asyncio.create_task(
                self._message_processor(client_id)
            )

    async def _message_processor(self, client_id: str) -> None:
        """Drain the client's queue, then exit."""
        queue = self._get_message_queue(client_id)
        try:
            while True:
                try:
                    message_text, display_name = queue.get_nowait()
                except asyncio.QueueEmpty:
                    break

                try:
                    await self.interpreter.handle_message(
                        client_id, message_text, display_name
                    )
                except Exception as e:
                    log_exception(
                        conversation_logger(self.logger, client_id),
                        f"Error processing message '{message_text[:50]}'",
                        e,
                    )
                finally:
                    queue.task_done()
        finally:
            self.client_queues.pop(client_id, None)
            self.client_processing_tasks.pop(client_id, None)

    def _get_message_queue(self, client_id: str) -> asyncio.Queue:
        if client_id not in self.client_queues:
            self.client_queues[client_id] = asyncio.Queue()
        return self.client_queues[client_id]

    async def wait_idle(self) -> None:
        """Wait until every queued message has been processed."""
        while self.client_processing_tasks:
            await asyncio.gather(
                *list(self.client_processing_tasks.values()), return_exceptions=True
            )

    async def run_session_sweeper(self, interval: float) -> None:
        """Periodically drop expired sessions; runs until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.sessions.purge_expired()


def build_chatbot(
    config: Settings,
    store: Optional[ConversationStore] = None,
    client: Optional[MessagingClient] = None,
) -> ChatbotManager:
    """
    Wire the chatbot from settings.

    Raises:
        WorkflowDefinitionError: if the configured workflow cannot be loaded
    """
    workflow = load_workflow_file(config.WORKFLOW_PATH)
    if client is None:
        client = WhatsApp(
            config.WHATSAPP_TOKEN,
            config.WHATSAPP_PHONE_NUMBER_ID,
            base_url=config.WHATSAPP_API_URL,
        )
    interpreter = StepInterpreter(
        workflow=workflow,
        sessions=SessionRegistry(idle_timeout=config.BOT_SESSION_TIMEOUT_MINUTES * 60),
        channel=WhatsAppChannel(client, store),
        max_jumps=config.BOT_MAX_JUMPS,
        max_invalid_attempts=config.BOT_MAX_INVALID_ATTEMPTS,
        list_button_text=config.BOT_LIST_BUTTON_TEXT,
        http_timeout=config.HTTP_STEP_TIMEOUT,
    )
    return ChatbotManager(interpreter)
