import httpx
import pytest

from goldenhost.exceptions import MessagingError
from goldenhost.services.chatbot.channel import WhatsAppChannel
from goldenhost.services.messaging.client import WhatsApp, extract_message_id
from goldenhost.services.messaging.store import ConversationStore, InMemoryConversationStore

from conftest import GraphApi

PHONE = "966500000001"


class BrokenStore(ConversationStore):
    async def append(self, conversation_id, record, customer_name=None):
        raise RuntimeError("database unavailable")


@pytest.fixture
def api():
    return GraphApi()


@pytest.fixture
def client(api):
    return WhatsApp("token", "1234", transport=httpx.MockTransport(api))


@pytest.mark.asyncio
async def test_send_message(client, api):
    response = await client.send_message("Hello", PHONE)

    [request] = api.requests
    assert str(request.url) == "https://graph.facebook.com/v18.0/1234/messages"
    assert request.headers["Authorization"] == "Bearer token"
    assert api.payload() == {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": PHONE,
        "type": "text",
        "text": {"preview_url": False, "body": "Hello"},
    }
    assert extract_message_id(response) == "wamid.ABC"


@pytest.mark.asyncio
async def test_send_interactive_buttons_with_header(client, api):
    await client.send_interactive_buttons(
        "Pick one", [{"id": "opt_0", "title": "A"}], PHONE, header_text="Menu"
    )

    interactive = api.payload()["interactive"]
    assert interactive["header"] == {"type": "text", "text": "Menu"}
    assert interactive["action"]["buttons"] == [
        {"type": "reply", "reply": {"id": "opt_0", "title": "A"}}
    ]


@pytest.mark.asyncio
async def test_client_rejects_more_than_three_buttons(client, api):
    buttons = [{"id": f"opt_{i}", "title": str(i)} for i in range(4)]

    with pytest.raises(MessagingError) as exc_info:
        await client.send_interactive_buttons("Pick", buttons, PHONE)

    assert exc_info.value.code == "too_many_buttons"
    assert api.requests == []


@pytest.mark.asyncio
async def test_api_error_raises_messaging_error():
    api = GraphApi(400, {"error": {"code": 131030, "message": "Recipient not allowed"}})
    client = WhatsApp("token", "1234", transport=httpx.MockTransport(api))

    with pytest.raises(MessagingError) as exc_info:
        await client.send_message("Hello", PHONE)

    assert exc_info.value.code == "131030"
    assert "Recipient not allowed" in str(exc_info.value)


@pytest.mark.asyncio
async def test_transport_error_raises_messaging_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    client = WhatsApp("token", "1234", transport=httpx.MockTransport(handler))

    with pytest.raises(MessagingError) as exc_info:
        await client.send_message("Hello", PHONE)

    assert exc_info.value.code == "transport"


@pytest.mark.parametrize(
    "response,expected",
    [
        ({"messages": [{"id": "wamid.1"}]}, "wamid.1"),
        ({"messages": []}, None),
        ({}, None),
    ],
)
def test_extract_message_id(response, expected):
    assert extract_message_id(response) == expected


@pytest.mark.asyncio
async def test_channel_records_bot_messages(client, api):
    store = InMemoryConversationStore()
    channel = WhatsAppChannel(client, store)

    message_id = await channel.send_text(PHONE, "Hello")

    assert message_id == "wamid.ABC"
    [record] = await store.get_messages(PHONE)
    assert record["id"] == "wamid.ABC"
    assert record["sender"] == "bot"
    assert record["content"] == "Hello"
    assert record["channel"] == "whatsapp_meta"
    [conversation] = await store.list_conversations()
    assert conversation["unread_count"] == 0


@pytest.mark.asyncio
async def test_channel_choice_buttons(client, api):
    store = InMemoryConversationStore()
    channel = WhatsAppChannel(client, store)

    await channel.send_choice_buttons(PHONE, "Pick", ["A", "A very long option title here"])

    buttons = api.payload()["interactive"]["action"]["buttons"]
    assert [b["reply"] for b in buttons] == [
        {"id": "opt_0", "title": "A"},
        {"id": "opt_1", "title": "A very long option t"},
    ]
    [record] = await store.get_messages(PHONE)
    assert record["content"] == "Pick\nA | A very long option title here"


@pytest.mark.asyncio
@pytest.mark.parametrize("options", [[], ["1", "2", "3", "4"]])
async def test_channel_rejects_bad_button_counts(client, api, options):
    channel = WhatsAppChannel(client)

    with pytest.raises(ValueError):
        await channel.send_choice_buttons(PHONE, "Pick", options)

    assert api.requests == []


@pytest.mark.asyncio
async def test_channel_selectable_list(client, api):
    store = InMemoryConversationStore()
    channel = WhatsAppChannel(client, store)
    interactive = {"type": "list", "action": {"button": "Go", "sections": []}}

    await channel.send_selectable_list(PHONE, interactive)

    assert api.payload()["interactive"] == interactive
    [record] = await store.get_messages(PHONE)
    assert record["content"] == "[Interactive List]"


@pytest.mark.asyncio
async def test_channel_survives_store_failure(client, api):
    channel = WhatsAppChannel(client, BrokenStore())

    assert await channel.send_text(PHONE, "Hello") == "wamid.ABC"


@pytest.mark.asyncio
async def test_channel_propagates_delivery_failure():
    api = GraphApi(500, {"error": {"message": "Internal"}})
    channel = WhatsAppChannel(WhatsApp("token", "1234", transport=httpx.MockTransport(api)))

    with pytest.raises(MessagingError):
        await channel.send_text(PHONE, "Hello")
