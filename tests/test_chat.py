import json

from docdecode.chat import APOLOGY_TEXT, EMPTY_REPLY_TEXT, ChatContext, Conversation
from docdecode.errors import TransportError
from docdecode.schema import parse_analysis

from conftest import SAMPLE_ANALYSIS, FakeChat

NOTE = "Patient discharged with diagnosis X, take ibuprofen 400mg BID"


def _context():
    return ChatContext(original_input=NOTE, analysis=parse_analysis(json.dumps(SAMPLE_ANALYSIS)))


def _conversation(chat):
    opened = []

    def opener(ctx):
        opened.append(ctx)
        return chat

    return Conversation(_context(), opener), opened


def test_system_instruction_embeds_note_and_analysis():
    ctx = _context()
    instruction = ctx.system_instruction
    assert "DocDecode" in instruction
    assert NOTE in instruction
    assert ctx.analysis.to_json() in instruction
    assert "contact their healthcare provider" in instruction


def test_send_appends_user_then_model():
    chat = FakeChat(replies=["BID means twice a day."])
    conversation, opened = _conversation(chat)

    assert conversation.send("  What is BID? ") is True

    assert [(m.role, m.text) for m in conversation.messages] == [
        ("user", "What is BID?"),
        ("model", "BID means twice a day."),
    ]
    assert chat.sent == ["What is BID?"]
    assert not conversation.busy
    assert len(opened) == 1


def test_chat_handle_opened_once():
    chat = FakeChat(replies=["one", "two"])
    conversation, opened = _conversation(chat)

    conversation.send("first")
    conversation.send("second")

    assert len(opened) == 1
    assert len(conversation.messages) == 4


def test_failure_keeps_user_turn_and_apologises():
    chat = FakeChat(error=TransportError("connection reset"))
    conversation, _ = _conversation(chat)

    assert conversation.send("Can I drive?") is True

    assert [m.role for m in conversation.messages] == ["user", "model"]
    assert conversation.messages[0].text == "Can I drive?"
    assert conversation.messages[1].text == APOLOGY_TEXT
    assert not conversation.busy


def test_empty_reply_falls_back():
    conversation, _ = _conversation(FakeChat(replies=[""]))
    conversation.send("Hello")
    assert conversation.messages[-1].text == EMPTY_REPLY_TEXT


def test_blank_message_rejected():
    chat = FakeChat(replies=["unused"])
    conversation, opened = _conversation(chat)

    assert conversation.send("   ") is False
    assert conversation.send("") is False
    assert conversation.messages == []
    assert opened == []


def test_send_rejected_while_busy():
    chat = FakeChat(replies=["unused"])
    conversation, _ = _conversation(chat)
    conversation.busy = True

    assert conversation.send("Anything?") is False
    assert conversation.messages == []
    assert chat.sent == []
