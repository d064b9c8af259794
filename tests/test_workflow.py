import json

import pytest
from pydantic import ValidationError

from goldenhost.config import DEFAULT_WORKFLOW_PATH
from goldenhost.exceptions import WorkflowDefinitionError
from goldenhost.services.chatbot.workflow import (
    StepKind,
    build_step_index,
    iter_nodes,
    load_workflow,
    load_workflow_file,
)

from conftest import step


def test_load_wrapped_tree_indexes_every_node():
    """Numeric ids are indexed as strings, in pre-order"""
    workflow = load_workflow(
        {
            "tree": step(
                1,
                "Trigger",
                {},
                step(2, "QuestionStep", {"question": {"type": "text", "text": "Hi"}}),
                step(3, "ActionStep", {}, step(4, "JumpStep", {"stepId": 2})),
            )
        }
    )

    assert list(workflow.index) == ["1", "2", "3", "4"]
    assert workflow.lookup(4).kind == StepKind.JUMP.value
    assert workflow.lookup("2") is workflow.entry
    assert workflow.lookup("missing") is None
    assert workflow.lookup(None) is None


def test_load_bare_root():
    workflow = load_workflow(step("root", "Trigger", {}, step("a", "ActionStep")))

    assert workflow.root.id == "root"
    assert workflow.entry.id == "a"


def test_nodes_are_immutable():
    workflow = load_workflow(step("root", "Trigger", {}, step("a", "ActionStep")))

    with pytest.raises(ValidationError):
        workflow.entry.kind = "QuestionStep"
    with pytest.raises(TypeError):
        workflow.index["b"] = workflow.entry


def test_unknown_kinds_are_accepted():
    workflow = load_workflow(step("root", "Trigger", {}, step("x", "SomethingNew")))

    assert workflow.entry.kind == "SomethingNew"


def test_missing_data_and_childs_default_to_empty():
    workflow = load_workflow({"tree": {"id": 1, "type": "Trigger", "data": None}})

    assert workflow.root.data == {}
    assert workflow.root.children == ()
    assert workflow.entry is None


@pytest.mark.parametrize(
    "definition",
    [
        [],
        {"tree": []},
        {"tree": {"id": 1}},
        {"tree": {"id": 1, "type": "Trigger", "childs": "nope"}},
        {"tree": {"id": True, "type": "Trigger"}},
    ],
)
def test_malformed_definitions_are_rejected(definition):
    with pytest.raises(WorkflowDefinitionError):
        load_workflow(definition)


def test_duplicate_ids_rejected_by_default():
    definition = step("root", "Trigger", {}, step("a", "ActionStep"), step("a", "JumpStep"))

    with pytest.raises(WorkflowDefinitionError, match="Duplicate step id 'a'"):
        load_workflow(definition)


def test_duplicate_ids_last_write_wins_when_not_strict():
    definition = step("root", "Trigger", {}, step("a", "ActionStep"), step("a", "JumpStep"))

    workflow = load_workflow(definition, strict=False)

    assert workflow.lookup("a").kind == "JumpStep"


def test_iter_nodes_is_pre_order():
    workflow = load_workflow(
        step(
            "root",
            "Trigger",
            {},
            step("a", "QuestionStep", {}, step("a1", "ValidAnswer"), step("a2", "InvalidAnswer")),
            step("b", "ActionStep"),
        )
    )

    assert [n.id for n in iter_nodes(workflow.root)] == ["root", "a", "a1", "a2", "b"]


def test_nodes_without_id_are_not_indexed():
    workflow = load_workflow(
        step("root", "Trigger", {}, {"type": "ValidAnswer", "childs": [step("a", "ActionStep")]})
    )

    assert list(build_step_index(workflow.root)) == ["root", "a"]


def test_bundled_workflow_loads():
    workflow = load_workflow_file(DEFAULT_WORKFLOW_PATH)

    assert workflow.name == "golden-ticket-chatbot"
    assert workflow.entry.kind == StepKind.DATE_TIME.value
    assert workflow.lookup(10).kind == StepKind.QUESTION.value


def test_load_workflow_file_errors(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")

    with pytest.raises(WorkflowDefinitionError, match="not valid JSON"):
        load_workflow_file(broken)
    with pytest.raises(WorkflowDefinitionError, match="Cannot read"):
        load_workflow_file(tmp_path / "missing.json")


def test_load_workflow_file_uses_file_stem(tmp_path):
    path = tmp_path / "support-bot.json"
    path.write_text(json.dumps({"tree": step(1, "Trigger", {}, step(2, "ActionStep"))}))

    assert load_workflow_file(path).name == "support-bot"
