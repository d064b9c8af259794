"""
Chatbot workflow interpreter.

Walks a conversation through a workflow tree. Execution starts at the first
step under the root, runs step after step and suspends on a question until the
next inbound message arrives. Every step yields at most one successor, so a
run is a simple loop over the chain rather than a recursive descent.
"""

import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from goldenhost.logging import (
    ConversationLogger,
    conversation_logger,
    log_exception,
    setup_logger,
)
from goldenhost.services.chatbot.channel import (
    MAX_BUTTON_TITLE,
    MAX_BUTTONS,
    OutboundChannel,
)
from goldenhost.services.chatbot.session import Session, SessionRegistry
from goldenhost.services.chatbot.steps import (
    ActionData,
    ConditionData,
    HttpRequestData,
    JumpData,
    Predicate,
    Question,
    QuestionData,
    SaveResponse,
)
from goldenhost.services.chatbot.templating import substitute
from goldenhost.services.chatbot.workflow import StepKind, Workflow, WorkflowNode
from goldenhost.services.types import InteractiveList, ListRow, ListSection

logger = setup_logger(__name__)

MAX_LIST_ROW_TITLE = 24

StepHandler = Callable[[WorkflowNode, Session], Awaitable[Optional[WorkflowNode]]]


def fits_buttons(options: List[str]) -> bool:
    """Whether choices can be sent as reply buttons rather than a list"""
    return len(options) <= MAX_BUTTONS and all(
        len(option) <= MAX_BUTTON_TITLE for option in options
    )


def selected_option(question: Question, reply: str) -> Optional[str]:
    """
    Option of a `multiple` question chosen by `reply`, or None.

    When the options were rendered as a list the user picks a row whose title
    is the option cut to 24 characters, so those titles select the full
    option too. With two options sharing a title prefix the first one wins.
    """
    if reply in question.options:
        return reply
    if not fits_buttons(question.options):
        for option in question.options:
            if option[:MAX_LIST_ROW_TITLE] == reply:
                return option
    return None


def validate_answer(question: Question, reply: str) -> bool:
    """
    Check a reply against what the question expects.

    Choice and list answers must match a label exactly; free text only has to
    contain something other than whitespace.
    """
    if question.type == "multiple":
        return selected_option(question, reply) is not None
    if question.type == "whatsapp_list":
        return reply in question.list_row_titles()
    if question.type == "text":
        return bool(reply.strip())
    return False


def predicate_holds(predicate: Predicate, variables: Dict[str, str]) -> bool:
    """
    Only `equal_to` can reject a value. A predicate with no operator holds,
    and so does one with an operator the bot does not know.
    """
    value = ""
    if predicate.has_variable and predicate.variable:
        value = variables.get(predicate.variable) or ""

    if predicate.filter_operator == "equal_to":
        return value == predicate.values
    if predicate.filter_operator:
        logger.warning(
            f"Unknown filter operator {predicate.filter_operator!r}, treating as a match"
        )
    return True


def conditions_hold(conditions: ConditionData, variables: Dict[str, str]) -> bool:
    """All predicates must hold; an empty condition list never matches."""
    if not conditions.conditions:
        return False
    return all(predicate_holds(p, variables) for p in conditions.conditions)


def _as_variable(value: Any) -> str:
    if value is None or value == "":
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class StepInterpreter:
    """Executes workflow steps for chatbot sessions."""

    def __init__(
        self,
        workflow: Workflow,
        sessions: SessionRegistry,
        channel: OutboundChannel,
        max_jumps: int = 10,
        max_invalid_attempts: int = 0,
        list_button_text: str = "اختر",
        http_timeout: float = 15.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.logger = logger
        self.workflow = workflow
        self.sessions = sessions
        self.channel = channel
        self.max_jumps = max_jumps
        self.max_invalid_attempts = max_invalid_attempts
        self.list_button_text = list_button_text
        self.http_timeout = http_timeout
        self.http_transport = http_transport

        self.handlers: Dict[str, StepHandler] = {
            StepKind.QUESTION.value: self._ask_question,
            StepKind.BRANCH.value: self._branch,
            StepKind.ACTION.value: self._run_action,
            StepKind.HTTP_REQUEST.value: self._http_request,
            StepKind.DATE_TIME.value: self._date_time,
            StepKind.ASSIGN_TO.value: self._assign_to,
            StepKind.JUMP.value: self._jump,
        }

    def _log(self, session: Session) -> ConversationLogger:
        return conversation_logger(self.logger, session.conversation_id)

    async def handle_message(
        self, conversation_id: str, text: str, display_name: str = "Unknown"
    ) -> None:
        """Route an inbound message to a fresh start or to the pending question."""
        session = self.sessions.get(conversation_id)
        if session is None:
            await self.start(conversation_id, display_name)
            return

        if session.waiting_for_step_id:
            await self.resume(session, text)
        else:
            self._log(session).debug("Not waiting for an answer, ignoring message")

    async def start(self, conversation_id: str, contact_name: str = "") -> Session:
        """Create a session and run the workflow from its first step."""
        session = self.sessions.create(conversation_id, contact_name)
        await self.run(self.workflow.entry, session)
        return session

    async def resume(self, session: Session, reply: str) -> None:
        """Answer the question the session is waiting on and continue."""
        log = self._log(session)
        step = self.workflow.lookup(session.waiting_for_step_id)
        if step is None or step.kind != StepKind.QUESTION.value:
            # The next message starts the conversation over
            log.warning(
                f"Waiting on unknown question {session.waiting_for_step_id!r}, "
                "ending session"
            )
            self.sessions.delete(session.conversation_id)
            return

        try:
            next_step = self._answer_question(step, session, reply)
        except Exception as e:
            log_exception(log, f"Error processing answer to {step.id}", e)
            return

        await self.run(next_step, session)

    async def run(self, step: Optional[WorkflowNode], session: Session) -> None:
        """
        Execute steps until the chain ends, a question suspends it or a step
        fails. Failures are logged and never raised.
        """
        log = self._log(session)
        while step is not None:
            log.debug(f"Executing {step.kind} ({step.id})")
            try:
                step = await self.execute(step, session)
            except Exception as e:
                log_exception(log, f"Error executing {step.kind} ({step.id})", e)
                return

    async def execute(
        self, step: WorkflowNode, session: Session
    ) -> Optional[WorkflowNode]:
        """Run a single step and return its successor, if any."""
        handler = self.handlers.get(step.kind, self._pass_through)
        return await handler(step, session)

    def _answer_question(
        self, step: WorkflowNode, session: Session, reply: str
    ) -> Optional[WorkflowNode]:
        data = QuestionData.model_validate(step.data)
        question = data.question
        session.waiting_for_step_id = None

        if validate_answer(question, reply):
            session.invalid_attempts.pop(step.id, None)
            if data.save_response:
                answer = reply
                if question.type == "multiple":
                    answer = selected_option(question, reply)
                self._save_answer(data.save_response, session, answer)
            branch = step.outcome(StepKind.VALID_ANSWER)
            return branch.first_child if branch else None

        log = self._log(session)
        log.info(f"Invalid answer to {step.id}: {reply[:50]!r}")
        branch = step.outcome(StepKind.INVALID_ANSWER)
        if branch and branch.first_child:
            return branch.first_child

        attempts = session.invalid_attempts.get(step.id, 0) + 1
        session.invalid_attempts[step.id] = attempts
        if self.max_invalid_attempts and attempts > self.max_invalid_attempts:
            log.info(f"Too many invalid answers to {step.id}, ending session")
            self.sessions.delete(session.conversation_id)
            return None
        # Ask the same question again
        return step

    def _save_answer(self, target: SaveResponse, session: Session, value: str) -> None:
        if target.has_variable and target.variable:
            session.variables[target.variable] = value
        if target.has_field and target.contact_field:
            session.contact.set(target.contact_field, value)

    async def _ask_question(
        self, step: WorkflowNode, session: Session
    ) -> Optional[WorkflowNode]:
        question = QuestionData.model_validate(step.data).question
        recipient = session.conversation_id
        prompt = substitute(question.text, session)

        if question.type == "whatsapp_list" and question.interactive:
            await self.channel.send_selectable_list(recipient, question.interactive)
        elif question.type == "multiple" and question.options:
            if fits_buttons(question.options):
                await self.channel.send_choice_buttons(
                    recipient, prompt, question.options
                )
            else:
                await self.channel.send_selectable_list(
                    recipient, self._options_list(prompt, question.options)
                )
        else:
            await self.channel.send_text(recipient, prompt)

        session.waiting_for_step_id = step.id
        return None

    def _options_list(self, prompt: str, options: List[str]) -> InteractiveList:
        """Single-section list for choices that do not fit reply buttons"""
        rows: List[ListRow] = [
            {"id": f"opt_{i}", "title": option[:MAX_LIST_ROW_TITLE]}
            for i, option in enumerate(options)
        ]
        section: ListSection = {"rows": rows}
        return {
            "type": "list",
            "body": {"text": prompt},
            "action": {"button": self.list_button_text, "sections": [section]},
        }

    async def _branch(
        self, step: WorkflowNode, session: Session
    ) -> Optional[WorkflowNode]:
        for child in step.children:
            if child.kind == StepKind.IF_CONDITION.value:
                conditions = ConditionData.model_validate(child.data)
                if conditions_hold(conditions, session.variables):
                    return child.first_child
            elif child.kind == StepKind.ELSE_CONDITION.value:
                return child.first_child
        return None

    async def _run_action(
        self, step: WorkflowNode, session: Session
    ) -> Optional[WorkflowNode]:
        data = ActionData.model_validate(step.data)

        if data.type == "send_message":
            for item in data.payload:
                if item.message and item.message.text:
                    await self.channel.send_text(
                        session.conversation_id, substitute(item.message.text, session)
                    )
        elif data.type == "add_comment":
            self._log(session).info(
                f"[Bot Comment] {substitute(data.comment or '', session)}"
            )

        if step.first_child is not None:
            return step.first_child

        self.sessions.delete(session.conversation_id)
        return None

    async def _http_request(
        self, step: WorkflowNode, session: Session
    ) -> Optional[WorkflowNode]:
        try:
            data = HttpRequestData.model_validate(step.data)
            result = await self._call_endpoint(data, session)

            target = data.save_response
            if target and target.has_variable and target.variable:
                session.variables[target.variable] = json.dumps(
                    result, ensure_ascii=False, separators=(",", ":")
                )
            for mapping in data.response_map:
                value = result.get(mapping.key) if isinstance(result, dict) else None
                session.variables[mapping.variable] = _as_variable(value)
        except Exception as e:
            self._log(session).error(f"HTTP request step {step.id} failed: {e}")
            branch = step.outcome(StepKind.INVALID_ANSWER)
        else:
            branch = step.outcome(StepKind.VALID_ANSWER)

        return branch.first_child if branch else None

    async def _call_endpoint(self, data: HttpRequestData, session: Session) -> Any:
        body = substitute(data.body, session)
        payload = json.loads(body) if body.strip() else None
        headers = {header.key: header.value for header in data.headers}

        async with httpx.AsyncClient(
            transport=self.http_transport, timeout=self.http_timeout
        ) as client:
            response = await client.request(
                data.method.upper(), data.url, json=payload, headers=headers
            )
        response.raise_for_status()

        try:
            return response.json()
        except ValueError:
            return response.text

    async def _date_time(
        self, step: WorkflowNode, session: Session
    ) -> Optional[WorkflowNode]:
        # Open around the clock
        branch = step.outcome(StepKind.VALID_DATE_TIME)
        return branch.first_child if branch else None

    async def _assign_to(
        self, step: WorkflowNode, session: Session
    ) -> Optional[WorkflowNode]:
        self._log(session).info(
            f"[Bot] Assigning conversation to workspace (step {step.id}, data={step.data})"
        )
        branch = step.outcome(StepKind.VALID_ASSIGN_TO)
        return branch.first_child if branch else None

    async def _jump(
        self, step: WorkflowNode, session: Session
    ) -> Optional[WorkflowNode]:
        data = JumpData.model_validate(step.data)
        key = str(step.id)
        count = session.jump_counts.get(key, 0) + 1
        session.jump_counts[key] = count

        # maxJumps of 0 or missing falls back to the configured limit
        limit = data.max_jumps or self.max_jumps
        if count > limit:
            self._log(session).debug(f"Jump {step.id} reached its limit of {limit}")
            return None

        target = self.workflow.lookup(data.step_id)
        if target is None:
            self._log(session).warning(
                f"Jump {step.id} targets unknown step {data.step_id!r}"
            )
        return target

    async def _pass_through(
        self, step: WorkflowNode, session: Session
    ) -> Optional[WorkflowNode]:
        return step.first_child
