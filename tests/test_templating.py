import pytest

from goldenhost.services.chatbot.templating import substitute


@pytest.fixture
def session(sessions):
    session = sessions.create("966500000001", "Sara")
    session.variables.update({"event": "حفل الرياض", "order_id": "A-17", "empty": ""})
    return session


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Hello {{contact.name}}", "Hello Sara"),
        ("{{contact.phone_number}}", "966500000001"),
        ("mail: {{contact.email}}", "mail: "),
        ("Order {{order_id}} for {{event}}", "Order A-17 for حفل الرياض"),
        ("[{{empty}}]", "[]"),
        ("Unknown {{nothing}} stays", "Unknown {{nothing}} stays"),
        ("{{ order_id }} is not a placeholder", "{{ order_id }} is not a placeholder"),
        ("no placeholders", "no placeholders"),
    ],
)
def test_substitute(session, text, expected):
    assert substitute(text, session) == expected


@pytest.mark.parametrize("text", [None, ""])
def test_substitute_empty(session, text):
    assert substitute(text, session) == ""


def test_contact_fields_set_by_answers(session):
    session.contact.set("email", "sara@example.com")

    assert substitute("{{contact.email}}", session) == "sara@example.com"


def test_values_are_not_substituted_twice(session):
    session.variables["a"] = "{{b}}"
    session.variables["b"] = "nested"

    assert substitute("{{a}}", session) == "{{b}}"
