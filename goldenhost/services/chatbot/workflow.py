"""
Chatbot workflow definitions.

A workflow is a static tree of steps loaded once at startup. Each node is
`{id, type, data, childs}` in the JSON definition; the tree itself has no
cycles, loops are expressed with `JumpStep` nodes that reference a step id.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from goldenhost.exceptions import WorkflowDefinitionError
from goldenhost.logging import setup_logger

logger = setup_logger(__name__)


class StepKind(str, Enum):
    QUESTION = "QuestionStep"
    BRANCH = "BranchStep"
    IF_CONDITION = "IfCondition"
    ELSE_CONDITION = "ElseCondition"
    ACTION = "ActionStep"
    HTTP_REQUEST = "HttpRequestStep"
    DATE_TIME = "DateTimeStep"
    ASSIGN_TO = "AssignToStep"
    JUMP = "JumpStep"
    # Outcome tags selecting a successor
    VALID_ANSWER = "ValidAnswer"
    INVALID_ANSWER = "InvalidAnswer"
    VALID_DATE_TIME = "ValidDateTime"
    VALID_ASSIGN_TO = "ValidAssignTo"


class WorkflowNode(BaseModel):
    """One step of a workflow; never mutated after load."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[str] = None
    kind: str = Field(alias="type")
    data: Dict[str, Any] = Field(default_factory=dict)
    children: Tuple["WorkflowNode", ...] = Field(default=(), alias="childs")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("step id must be a string or an integer")
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("data", mode="before")
    @classmethod
    def _default_data(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("children", mode="before")
    @classmethod
    def _default_children(cls, value: Any) -> Any:
        return () if value is None else value

    @property
    def first_child(self) -> Optional["WorkflowNode"]:
        return self.children[0] if self.children else None

    def outcome(self, tag: Union[StepKind, str]) -> Optional["WorkflowNode"]:
        """Return the first child tagged with the given outcome kind."""
        tag = tag.value if isinstance(tag, StepKind) else tag
        for child in self.children:
            if child.kind == tag:
                return child
        return None

    def __repr__(self) -> str:
        return f"WorkflowNode(id={self.id!r}, kind={self.kind!r}, children={len(self.children)})"


WorkflowNode.model_rebuild()


class StepIndex(Mapping):
    """Read-only mapping of step id to node."""

    def __init__(self, entries: Dict[str, WorkflowNode]):
        self._entries = MappingProxyType(dict(entries))

    def __getitem__(self, step_id: str) -> WorkflowNode:
        return self._entries[step_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def iter_nodes(root: WorkflowNode) -> Iterator[WorkflowNode]:
    """Pre-order traversal without recursion."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def build_step_index(root: WorkflowNode, strict: bool = True) -> StepIndex:
    """
    Index every node that carries an id.

    Args:
        root: Workflow root node
        strict: Reject duplicate ids. When False the last node visited in
            pre-order wins.

    Raises:
        WorkflowDefinitionError: on a duplicate id in strict mode
    """
    entries: Dict[str, WorkflowNode] = {}
    for node in iter_nodes(root):
        if node.id is None:
            continue
        if node.id in entries:
            if strict:
                raise WorkflowDefinitionError(
                    f"Duplicate step id {node.id!r} "
                    f"({entries[node.id].kind} and {node.kind})"
                )
            logger.warning(f"Duplicate step id {node.id!r}, keeping the later node")
        entries[node.id] = node
    return StepIndex(entries)


@dataclass(frozen=True)
class Workflow:
    """A loaded workflow: the root container and its step index."""

    root: WorkflowNode
    index: StepIndex
    name: str = "workflow"

    @property
    def entry(self) -> Optional[WorkflowNode]:
        """First executable step; the root itself is only a container."""
        return self.root.first_child

    def lookup(self, step_id: Any) -> Optional[WorkflowNode]:
        if step_id is None:
            return None
        return self.index.get(str(step_id))


def load_workflow(
    definition: Mapping, strict: bool = True, name: Optional[str] = None
) -> Workflow:
    """
    Build a Workflow from a parsed definition.

    Accepts either `{"tree": <root>}` or a bare root node mapping.

    Raises:
        WorkflowDefinitionError: if the definition is malformed
    """
    if not isinstance(definition, Mapping):
        raise WorkflowDefinitionError(
            f"Workflow definition must be an object, got {type(definition).__name__}"
        )

    tree = definition.get("tree", definition)
    if not isinstance(tree, Mapping):
        raise WorkflowDefinitionError("Workflow 'tree' must be an object")

    try:
        root = WorkflowNode.model_validate(tree)
    except ValidationError as e:
        raise WorkflowDefinitionError(f"Invalid workflow definition: {e}") from e

    index = build_step_index(root, strict=strict)
    workflow = Workflow(
        root=root, index=index, name=name or str(definition.get("name", "workflow"))
    )

    if workflow.entry is None:
        logger.warning(f"Workflow {workflow.name!r} has no steps under its root")

    for node in iter_nodes(root):
        if node.kind == StepKind.JUMP.value:
            target = node.data.get("stepId")
            if workflow.lookup(target) is None:
                logger.warning(
                    f"Jump step {node.id!r} points to unknown step {target!r}"
                )

    logger.info(f"Loaded workflow {workflow.name!r} with {len(index)} indexed steps")
    return workflow


def load_workflow_file(path: Union[str, Path], strict: bool = True) -> Workflow:
    """Read and load a JSON workflow definition from disk."""
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            definition = json.load(f)
    except OSError as e:
        raise WorkflowDefinitionError(f"Cannot read workflow file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise WorkflowDefinitionError(f"Workflow file {path} is not valid JSON: {e}") from e

    return load_workflow(definition, strict=strict, name=path.stem)
