import json
import importlib
from typing import Any, Dict, List, Optional, Union

import pytest
from fastapi.testclient import TestClient

from agent import ConversationOrchestrator
from api.shop_local import ShopLocalClient
from auth import issue_token
from memory.chat_log_sqlalchemy import ChatLogSQLAlchemy
from memory.inmemory_impl import InMemoryHistoryStore
from models import ModelReply, ModelToolCall
from prompts import pinned_prefix
from tools import ToolDispatcher

# seeded users of the local shop
ADMIN_ID = "1"
JIM_ID = "2"
BENDER_ID = "3"


def text_reply(content: str) -> ModelReply:
    return ModelReply(content=content)


def tool_reply(name: str, arguments: Union[Dict[str, Any], str], call_id: str = "call_1") -> ModelReply:
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ModelReply(content=None, tool_calls=[ModelToolCall(id=call_id, name=name, arguments=raw)])


class ScriptedLLM:
    """Replays queued replies in place of the chat-completions client."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.replies: List[Union[ModelReply, Exception]] = []
        self.calls: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def queue(self, *replies: Union[ModelReply, Exception]) -> "ScriptedLLM":
        self.replies.extend(replies)
        return self

    def complete(self, messages, tools=None, tool_choice: Optional[str] = None) -> ModelReply:
        self.calls.append({"messages": list(messages), "tools": tools, "tool_choice": tool_choice})
        assert self.replies, "unexpected model call"
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def shop():
    return ShopLocalClient()


@pytest.fixture
def dispatcher(shop):
    return ToolDispatcher(shop)


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def history():
    return InMemoryHistoryStore(pinned_prefix, max_history_length=10)


@pytest.fixture
def chat_log(shop):
    return ChatLogSQLAlchemy(engine=shop.engine)


@pytest.fixture
def orchestrator(llm, dispatcher, history, chat_log):
    return ConversationOrchestrator(llm=llm, dispatcher=dispatcher, history=history, message_store=chat_log)


@pytest.fixture
def app_module(monkeypatch, orchestrator):
    """The HTTP app wired to the test orchestrator."""
    mod = importlib.import_module("app")
    monkeypatch.setattr(mod, "orchestrator", orchestrator)
    yield mod


@pytest.fixture
def client(app_module):
    return TestClient(app_module.app)


@pytest.fixture
def auth_header():
    def _make(user_id: str = JIM_ID, username: Optional[str] = None) -> Dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(user_id, username)}"}
    return _make
