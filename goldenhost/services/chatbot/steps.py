"""Typed views over the `data` payload of each workflow step kind."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StepData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SaveResponse(StepData):
    """Where an answer or an HTTP response is written in the session"""

    has_variable: bool = Field(default=False, alias="hasVariable")
    variable: Optional[str] = None
    has_field: bool = Field(default=False, alias="hasField")
    contact_field: Optional[str] = Field(default=None, alias="field")


class Question(StepData):
    type: str = "text"
    text: str = ""
    options: List[str] = Field(default_factory=list)
    interactive: Optional[Dict[str, Any]] = None

    def list_row_titles(self) -> List[str]:
        """Row titles of every section of an interactive list question."""
        if not self.interactive:
            return []
        action = self.interactive.get("action") or {}
        titles = []
        for section in action.get("sections") or []:
            for row in section.get("rows") or []:
                if "title" in row:
                    titles.append(row["title"])
        return titles


class QuestionData(StepData):
    question: Question
    save_response: Optional[SaveResponse] = Field(default=None, alias="saveResponse")


class Predicate(StepData):
    has_variable: bool = Field(default=False, alias="hasVariable")
    variable: Optional[str] = None
    filter_operator: Optional[str] = None
    values: Any = ""


class ConditionData(StepData):
    conditions: List[Predicate] = Field(default_factory=list)

    @field_validator("conditions", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class MessageText(StepData):
    text: Optional[str] = None


class ActionPayload(StepData):
    message: Optional[MessageText] = None


class ActionData(StepData):
    type: Optional[str] = None
    payload: List[ActionPayload] = Field(default_factory=list)
    comment: Optional[str] = None


class Header(StepData):
    key: str
    value: str = ""


class ResponseMapping(StepData):
    variable: str
    key: str


class HttpRequestData(StepData):
    url: str
    method: str = "POST"
    body: Optional[str] = None
    headers: List[Header] = Field(default_factory=list)
    save_response: Optional[SaveResponse] = Field(default=None, alias="saveResponse")
    response_map: List[ResponseMapping] = Field(
        default_factory=list, alias="responseMap"
    )


class JumpData(StepData):
    step_id: Optional[str] = Field(default=None, alias="stepId")
    max_jumps: Optional[int] = Field(default=None, alias="maxJumps")

    @field_validator("step_id", mode="before")
    @classmethod
    def _stringify_step_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value
