import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from goldenhost.services.chatbot.channel import OutboundChannel
from goldenhost.services.chatbot.interpreter import StepInterpreter
from goldenhost.services.chatbot.session import SessionRegistry
from goldenhost.services.chatbot.workflow import Workflow, load_workflow
from goldenhost.exceptions import MessagingError


class FakeClock:
    """Manually advanced clock for session expiry tests"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class GraphApi:
    """Fake Graph API endpoint capturing outgoing requests"""

    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {"messages": [{"id": "wamid.ABC"}]}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    def payload(self, index=-1):
        return json.loads(self.requests[index].content)


class RecordingChannel(OutboundChannel):
    """Outbound channel that records what the bot sends"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    def _send(self, kind: str, recipient: str, **payload) -> Optional[str]:
        if self.fail:
            raise MessagingError("channel down", code="transport")
        self.sent.append({"kind": kind, "to": recipient, **payload})
        return f"wamid.{len(self.sent)}"

    async def send_text(self, recipient, text):
        return self._send("text", recipient, text=text)

    async def send_choice_buttons(self, recipient, text, options):
        return self._send("buttons", recipient, text=text, options=list(options))

    async def send_selectable_list(self, recipient, interactive):
        return self._send("list", recipient, interactive=interactive)

    def texts(self) -> List[str]:
        return [m["text"] for m in self.sent if m["kind"] == "text"]


def step(step_id, kind, data=None, *children) -> Dict[str, Any]:
    """Build a workflow node definition"""
    return {"id": step_id, "type": kind, "data": data or {}, "childs": list(children)}


def send(step_id, *texts, children=()) -> Dict[str, Any]:
    """ActionStep that sends the given texts"""
    return step(
        step_id,
        "ActionStep",
        {"type": "send_message", "payload": [{"message": {"text": t}} for t in texts]},
        *children,
    )


def workflow_of(*first_steps) -> Workflow:
    return load_workflow({"tree": step("root", "Trigger", {}, *first_steps)})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def sessions(clock):
    return SessionRegistry(idle_timeout=30 * 60, clock=clock)


@pytest.fixture
def make_interpreter(sessions, channel):
    def _make(workflow: Workflow, **kwargs) -> StepInterpreter:
        return StepInterpreter(workflow, sessions, channel, **kwargs)

    return _make
