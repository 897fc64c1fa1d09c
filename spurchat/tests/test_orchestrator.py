import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from spurchat.backend.orchestrator import TurnRequest, run_turn
from spurchat.llm.responder import retitle_conversation
from spurchat.memory import crud
from spurchat.utils.error_handler import (
    ChatValidationError,
    ConversationNotFoundError,
    StorageError,
    soft_failure,
)


class RecordingSpawner:
    """Collects background calls instead of running them."""

    def __init__(self):
        self.calls = []

    def __call__(self, func, *args):
        self.calls.append((func, args))


def _turn(request, spawner=None):
    return asyncio.run(run_turn(request, spawner or RecordingSpawner()))


@pytest.mark.parametrize("user_id", [None, "", "   "])
def test_user_id_is_required(user_id):
    with pytest.raises(ChatValidationError):
        _turn(TurnRequest(user_id=user_id, message="Hello"))


@pytest.mark.parametrize("message", [None, "", "  \n"])
def test_message_is_required_without_name(message):
    with pytest.raises(ChatValidationError):
        _turn(TurnRequest(user_id="alice", message=message))


def test_whitespace_message_does_not_trigger_named_creation():
    with pytest.raises(ChatValidationError):
        _turn(TurnRequest(user_id="alice", message="  ", name="Support"))

    assert crud.list_conversations("alice") == []


def test_named_creation_short_circuits():
    spawner = RecordingSpawner()

    result = _turn(TurnRequest(user_id="alice", name="Support"), spawner)

    assert result.reply is None
    assert crud.get_user_conversation(result.session_id, "alice")["name"] == "Support"
    assert crud.fetch_history(result.session_id) == []
    assert spawner.calls == []


def test_first_turn_creates_conversation_and_schedules_title(fake_llm):
    spawner = RecordingSpawner()

    result = _turn(TurnRequest(user_id="alice", message="What is your return policy?"), spawner)

    assert result.reply == fake_llm.reply
    history = crud.fetch_history(result.session_id)
    assert [(h["sender"], h["content"]) for h in history] == [
        ("user", "What is your return policy?"),
        ("ai", fake_llm.reply),
    ]
    assert spawner.calls == [(retitle_conversation, (result.session_id, "What is your return policy?"))]
    # the stored history already ends with the message, which is appended again
    (call,) = fake_llm.calls_of("reply")
    assert [m["role"] for m in call["messages"]] == ["system", "user", "user"]


def test_second_turn_sees_prior_messages_and_skips_title(fake_llm):
    first = _turn(TurnRequest(user_id="alice", message="What is your return policy?"))
    spawner = RecordingSpawner()

    second = _turn(
        TurnRequest(user_id="alice", message="And shipping?", session_id=first.session_id),
        spawner,
    )

    assert second.session_id == first.session_id
    assert spawner.calls == []
    last_call = fake_llm.calls_of("reply")[-1]
    assert [m["role"] for m in last_call["messages"]] == ["system", "user", "assistant", "user", "user"]
    assert last_call["messages"][-1]["content"] == "And shipping?"
    assert len(crud.fetch_history(first.session_id)) == 4


def test_foreign_conversation_is_not_found_and_nothing_is_stored():
    first = _turn(TurnRequest(user_id="alice", message="Hi"))

    with pytest.raises(ConversationNotFoundError):
        _turn(TurnRequest(user_id="bob", message="Let me in", session_id=first.session_id))

    assert len(crud.fetch_history(first.session_id)) == 2


def test_generation_failure_still_completes_turn(fake_llm):
    from spurchat.llm.responder import APOLOGY_MESSAGE

    fake_llm.fail.add("reply")

    result = _turn(TurnRequest(user_id="alice", message="Hello?"))

    assert result.reply == APOLOGY_MESSAGE
    ai_messages = [h for h in crud.fetch_history(result.session_id) if h["sender"] == "ai"]
    assert [m["content"] for m in ai_messages] == [APOLOGY_MESSAGE]


def test_memories_are_fed_into_later_turns(fake_llm):
    fake_llm.facts = '{"facts": ["User bought a cat keyboard"]}'
    _turn(TurnRequest(user_id="alice", message="I bought a cat keyboard"))

    fake_llm.facts = '{"facts": []}'
    # a different conversation of the same user still sees the fact
    _turn(TurnRequest(user_id="alice", message="Can I return it?"))

    system_prompt = fake_llm.calls_of("reply")[-1]["messages"][0]["content"]
    assert "- User bought a cat keyboard" in system_prompt
    assert crud.fetch_memories("alice").value == ["User bought a cat keyboard"]


def test_extraction_failure_does_not_change_reply(fake_llm):
    fake_llm.fail.add("facts")

    result = _turn(TurnRequest(user_id="alice", message="I live in Mumbai"))

    assert result.reply == fake_llm.reply
    assert crud.fetch_memories("alice").value == []


def test_memory_read_failure_degrades_to_no_memories(fake_llm, monkeypatch):
    crud.store_memories("alice", ["User lives in Mumbai"])

    @soft_failure(default=[])
    def _broken_fetch_memories(user_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(crud, "fetch_memories", _broken_fetch_memories)

    result = _turn(TurnRequest(user_id="alice", message="Hello"))

    assert result.reply == fake_llm.reply
    system_prompt = fake_llm.calls_of("reply")[-1]["messages"][0]["content"]
    assert "Relevant memories" not in system_prompt


def test_saving_user_message_failure_aborts(fake_llm, monkeypatch):
    def _broken_log(conversation_id, sender, content):
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(crud, "log_message", _broken_log)

    with pytest.raises(StorageError):
        _turn(TurnRequest(user_id="alice", message="Hello"))
    assert fake_llm.calls == []


def test_history_failure_aborts(fake_llm, monkeypatch):
    def _broken_history(conversation_id):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(crud, "fetch_history", _broken_history)

    with pytest.raises(StorageError):
        _turn(TurnRequest(user_id="alice", message="Hello"))
    assert fake_llm.calls_of("reply") == []
