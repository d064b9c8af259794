import asyncio
import contextlib
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from goldenhost import __version__
from goldenhost.api.conversations import send_agent_message
from goldenhost.api.webhook import verify_webhook, handle_message
from goldenhost.config import Settings, settings
from goldenhost.exceptions import MessagingError
from goldenhost.logging import setup_logger
from goldenhost.schemas import SendMessageRequest, ServiceInfo
from goldenhost.services.chatbot.manager import ChatbotManager, build_chatbot
from goldenhost.services.messaging.client import MessagingClient, WhatsApp
from goldenhost.services.messaging.store import (
    ConversationStore,
    InMemoryConversationStore,
)

logger = setup_logger(__name__)


def create_app(
    config: Settings = settings,
    chatbot: Optional[ChatbotManager] = None,
    store: Optional[ConversationStore] = None,
    client: Optional[MessagingClient] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    The chatbot is built from `config` at startup unless one is passed in; a
    workflow that fails to load aborts startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.store = store or InMemoryConversationStore()
        app.state.whatsapp = client or WhatsApp(
            config.WHATSAPP_TOKEN,
            config.WHATSAPP_PHONE_NUMBER_ID,
            base_url=config.WHATSAPP_API_URL,
        )
        app.state.chatbot = chatbot or build_chatbot(
            config, app.state.store, app.state.whatsapp
        )
        logger.info("Chatbot workflow loaded")

        sweeper = None
        if config.BOT_SWEEP_INTERVAL_SECONDS > 0:
            sweeper = asyncio.create_task(
                app.state.chatbot.run_session_sweeper(config.BOT_SWEEP_INTERVAL_SECONDS)
            )

        yield

        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        await app.state.chatbot.wait_idle()
        logger.info("Application shutdown")

    app = FastAPI(
        title=config.PROJECT_NAME,
        description=config.PROJECT_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.get("/webhook")
    async def webhook_verification(
        hub_mode: str = Query(None, alias="hub.mode"),
        hub_verify_token: str = Query(None, alias="hub.verify_token"),
        hub_challenge: str = Query(None, alias="hub.challenge"),
    ) -> Response:
        return verify_webhook(
            hub_mode, hub_verify_token, hub_challenge, config.WHATSAPP_VERIFY_TOKEN
        )

    @app.post("/webhook")
    async def webhook_handler(request: Request):
        # Meta retries anything but a 200, so errors are reported in the body
        try:
            data = await request.json()
            result = await handle_message(
                data,
                request.app.state.chatbot,
                request.app.state.store,
                config.BOT_PHONE_NUMBER_ID,
            )
            return result.model_dump()
        except Exception as e:
            logger.error(f"Error handling webhook: {e}")
            return JSONResponse(
                content={"status": "error", "message": str(e)},
                status_code=status.HTTP_200_OK,
            )

    @app.get("/", tags=["root"])
    async def root():
        return {
            "status": "running",
            "service": f"{config.PROJECT_NAME} WhatsApp Backend",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": {
                "webhook": "/webhook",
                "sendMessage": "POST /api/send-message",
                "conversations": "GET /api/conversations",
                "messages": "GET /api/conversations/{phone}/messages",
            },
        }

    @app.get("/health", tags=["root"])
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api", tags=["root"], response_model=ServiceInfo)
    async def service_info():
        return ServiceInfo(
            status="running",
            service=f"{config.PROJECT_NAME} WhatsApp Backend",
            version=__version__,
        )

    @app.get("/api/conversations", tags=["conversations"])
    async def list_conversations(request: Request):
        return await request.app.state.store.list_conversations()

    @app.get("/api/conversations/{phone}/messages", tags=["conversations"])
    async def conversation_messages(phone: str, request: Request):
        return await request.app.state.store.get_messages(phone)

    @app.post("/api/send-message", tags=["conversations"])
    async def send_message(payload: SendMessageRequest, request: Request):
        if not payload.to or not payload.message:
            return JSONResponse(
                content={"error": "Missing required fields: to, message"},
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        if payload.type != "text":
            return JSONResponse(
                content={"error": f"Unsupported message type: {payload.type}"},
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        try:
            result = await send_agent_message(
                request.app.state.whatsapp,
                request.app.state.store,
                payload.to,
                payload.message,
            )
        except MessagingError as e:
            logger.error(f"Send message error: {e}")
            return JSONResponse(
                content={"error": str(e), "error_code": e.code},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return result.model_dump()

    return app


app = create_app()
