import os
from types import SimpleNamespace

import pytest

# Must be set before any spurchat module is imported: crud creates the schema
# on import. Each test then rebinds to its own sqlite file below.
os.environ["SPURCHAT_DATABASE_URL"] = "sqlite://"
os.environ.setdefault("OPENAI_API_KEY", "test-key")

from spurchat.memory import db as db_module  # noqa: E402


class FakeCompletions:
    """Stand-in for ``client.chat.completions`` that never leaves the process.

    Calls are classified by shape: fact extraction asks for a JSON object,
    replies start with a system prompt, anything else is a title request.
    """

    def __init__(self):
        self.calls = []
        self.reply = "You can return any item within 30 days for a full refund."
        self.title = "Return Policy Question"
        self.facts = '{"facts": []}'
        self.fail = set()

    @staticmethod
    def kind(kwargs) -> str:
        if kwargs.get("response_format"):
            return "facts"
        if kwargs["messages"][0]["role"] == "system":
            return "reply"
        return "title"

    def create(self, **kwargs):
        kind = self.kind(kwargs)
        self.calls.append((kind, kwargs))
        if kind in self.fail:
            raise RuntimeError(f"{kind} completion failed")
        content = {"reply": self.reply, "title": self.title, "facts": self.facts}[kind]
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    def calls_of(self, kind: str):
        return [kwargs for k, kwargs in self.calls if k == kind]


@pytest.fixture(autouse=True)
def memory_db(tmp_path):
    """Fresh sqlite database per test."""
    engine = db_module.configure_engine(f"sqlite:///{tmp_path / 'chat_mem.db'}")
    db_module.init_db()
    yield engine


@pytest.fixture(autouse=True)
def fake_llm(monkeypatch):
    completions = FakeCompletions()
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    monkeypatch.setattr("spurchat.llm.completion.get_openai_client", lambda: client)
    return completions
