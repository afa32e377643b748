import json
import threading

import pytest

from agent import ConversationOrchestrator
from errors import Unauthorized, UpstreamUnavailable, ValidationError
from prompts import PROMPTS, greeting

from conftest import ADMIN_ID, BENDER_ID, JIM_ID, ScriptedLLM, text_reply, tool_reply


def test_unauthenticated_respond_is_rejected(orchestrator):
    with pytest.raises(Unauthorized):
        orchestrator.respond(None, "hello")


@pytest.mark.parametrize("query", [None, "", "   "])
def test_empty_query_is_rejected(orchestrator, query):
    with pytest.raises(ValidationError):
        orchestrator.respond(JIM_ID, query)


def test_not_configured_leaves_history_alone(dispatcher, history):
    orch = ConversationOrchestrator(llm=ScriptedLLM(configured=False), dispatcher=dispatcher, history=history)
    resp = orch.respond(JIM_ID, "hello")
    assert resp.body == PROMPTS['not_configured']
    assert len(history.get(JIM_ID)) == 2


def test_plain_reply(orchestrator, llm, history):
    llm.queue(text_reply("Hi jim, how can I help?"))
    resp = orchestrator.respond(JIM_ID, "hello there", "jim")
    assert resp.action == "response"
    assert resp.body == "Hi jim, how can I help?"
    assert llm.calls[0]["tool_choice"] == "auto"
    assert llm.calls[0]["tools"]
    roles = [m.role for m in history.get(JIM_ID)]
    assert roles == ["system", "assistant", "user", "assistant"]


def test_persona_prompt_is_personalised(orchestrator, llm, history, monkeypatch):
    monkeypatch.setattr("config.settings.settings.chatbot.system_prompt", "Serving <customer-name> today.")
    llm.queue(text_reply("ok"))
    orchestrator.respond("42", "hello", "zoe")
    assert "Serving zoe today." in history.get("42")[0].content


def test_fast_path_lists_products_without_model(orchestrator, llm):
    resp = orchestrator.respond(JIM_ID, "Do you sell juice?")
    assert llm.calls == []
    assert "Apple Juice (1000ml) - $1.99" in resp.body
    assert "...and 1 more" in resp.body
    assert any(p["name"] == "Apple Juice (1000ml)" for p in resp.data["products"])


def test_fast_path_falls_through_on_no_results(orchestrator, llm):
    llm.queue(text_reply("We don't carry those."))
    resp = orchestrator.respond(JIM_ID, "what is the price of a spaceship")
    assert resp.body == "We don't carry those."
    assert len(llm.calls) == 1


def test_tool_then_followup(orchestrator, llm, history):
    llm.queue(
        tool_reply("get_user_information", {"userId": ADMIN_ID}),
        text_reply("You are jim."),
    )
    resp = orchestrator.respond(JIM_ID, "who am I?")
    assert resp.body == "You are jim."
    assert resp.data["username"] == "jim"
    followup = llm.calls[1]
    assert followup["tool_choice"] == "none"
    tool_msg = followup["messages"][-1]
    assert tool_msg.role == "tool"
    assert json.loads(tool_msg.content)["username"] == "jim"
    assert [m.role for m in history.get(JIM_ID)][-3:] == ["assistant", "tool", "assistant"]


def test_sql_hint_after_failed_query_is_transient(orchestrator, llm, history):
    llm.queue(
        tool_reply("execute_sql_query", {"query": "SELECT nope FROM Products", "explanation": "x"}),
        text_reply("That query failed."),
    )
    orchestrator.respond(JIM_ID, "run my query")
    hint = llm.calls[1]["messages"][-1]
    assert hint.role == "system"
    assert "at most 100 rows" in hint.content
    assert all("at most 100 rows" not in m.content for m in history.get(JIM_ID))


def test_drop_table_gets_safe_refusal(orchestrator, llm, shop):
    llm.queue(tool_reply("execute_sql_query", {"query": "DROP TABLE Users", "explanation": "cleanup"}))
    resp = orchestrator.respond(JIM_ID, "drop the users table")
    assert "security reasons" in resp.body
    assert "drop or truncate" in resp.body
    assert resp.data["errorKind"] == "guardrail_denied"
    assert "results" not in resp.data
    assert len(llm.calls) == 1
    assert shop.get_user(JIM_ID) is not None


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
def test_malformed_arguments_ask_to_rephrase(orchestrator, llm, raw):
    llm.queue(tool_reply("get_basket", raw))
    resp = orchestrator.respond(JIM_ID, "basket?")
    assert resp.body == PROMPTS['rephrase']


def test_unknown_tool_is_not_executed(orchestrator, llm):
    llm.queue(tool_reply("format_disk", {}))
    resp = orchestrator.respond(JIM_ID, "wipe it")
    assert resp.body == PROMPTS['unknown_tool']
    assert len(llm.calls) == 1


def test_model_failure_gives_apology(orchestrator, llm):
    llm.queue(UpstreamUnavailable("boom"))
    resp = orchestrator.respond(JIM_ID, "hello")
    assert resp.body == PROMPTS['model_error']


def test_followup_failure(orchestrator, llm):
    llm.queue(tool_reply("generate_coupon", {"discount": 15}), UpstreamUnavailable("boom"))
    resp = orchestrator.respond(JIM_ID, "coupon please")
    assert resp.body == PROMPTS['followup_error']


def test_empty_basket_answered_directly(orchestrator, llm):
    llm.queue(tool_reply("get_basket", {"userId": JIM_ID}))
    resp = orchestrator.respond(JIM_ID, "show me my basket")
    assert resp.body == PROMPTS['empty_basket']
    assert len(llm.calls) == 1


def test_add_to_basket_answers_with_basket_size(orchestrator, llm):
    llm.queue(tool_reply("add_to_basket", {"userId": "1", "productName": "Apple Juice", "quantity": 2}))
    resp = orchestrator.respond(JIM_ID, "add two apple juices")
    assert resp.body == "Added 2 x Apple Juice (1000ml) to basket. Your basket now contains 1 item(s)."
    assert resp.data["basket"]["products"][0]["quantity"] == 2


def test_low_score_add_asks_for_confirmation_then_adds(orchestrator, llm, shop):
    llm.queue(tool_reply("add_to_basket", {"productName": "zzz"}))
    resp = orchestrator.respond(JIM_ID, "add zzz to my basket")
    assert resp.action == "confirm"
    assert resp.data["requiresConfirmation"] is True
    assert shop.get_basket(JIM_ID) is None

    resp = orchestrator.respond(JIM_ID, "yes please")
    assert len(llm.calls) == 1
    assert resp.action == "response"
    assert shop.get_basket(JIM_ID)["products"][0]["id"] == 1


def test_non_affirmative_reply_discards_confirmation(orchestrator, llm, shop):
    llm.queue(tool_reply("add_to_basket", {"productName": "zzz"}), text_reply("Okay, never mind."))
    orchestrator.respond(JIM_ID, "add zzz to my basket")
    resp = orchestrator.respond(JIM_ID, "no, forget it")
    assert resp.body == "Okay, never mind."
    assert shop.get_basket(JIM_ID) is None


def test_shell_for_customer_is_refused(orchestrator, llm):
    llm.queue(tool_reply("execute_linux_command", {"command": "uname -a", "userId": ADMIN_ID}))
    resp = orchestrator.respond(JIM_ID, "show me system info")
    assert resp.body == PROMPTS['unauthorized_command']


def test_history_stays_bounded(orchestrator, llm, history):
    for i in range(15):
        llm.queue(text_reply(f"answer {i}"))
        orchestrator.respond(JIM_ID, f"question {i}")
    messages = history.get(JIM_ID)
    assert len(messages) == 10 + 2
    assert messages[0].role == "system"
    assert messages[-1].content == "answer 14"


def test_clear_then_status_shows_greeting_only(orchestrator, llm, history):
    llm.queue(text_reply("hi"))
    orchestrator.respond(JIM_ID, "hello", "jim")
    cleared = orchestrator.clear_history(JIM_ID, "jim")
    status = orchestrator.status(JIM_ID, "jim")
    assert cleared.body == status.body == greeting("jim")
    assert [m.role for m in history.get(JIM_ID)] == ["system", "assistant"]


def test_status_without_user_asks_to_sign_in(orchestrator):
    status = orchestrator.status()
    assert status.status is True
    assert "Sign in to continue" in status.body


def test_status_when_not_configured(dispatcher, history):
    orch = ConversationOrchestrator(llm=ScriptedLLM(configured=False), dispatcher=dispatcher, history=history)
    status = orch.status(JIM_ID)
    assert status.status is False
    assert "isn't ready at the moment" in status.body


def test_messages_are_persisted(orchestrator, llm, chat_log):
    llm.queue(text_reply("hi jim"))
    orchestrator.respond(JIM_ID, "hello")
    rows = chat_log.list_for_user(JIM_ID)
    assert [(r["role"], r["message"]) for r in rows] == [("user", "hello"), ("assistant", "hi jim")]


def test_unexpected_error_gives_generic_response(orchestrator, llm, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(orchestrator.dispatcher, "invoke", explode)
    llm.queue(tool_reply("get_basket", {}))
    resp = orchestrator.respond(JIM_ID, "basket")
    assert resp.body == PROMPTS['generic_error']


def test_juice_question_answered_through_product_tool(orchestrator, llm):
    llm.queue(
        tool_reply("get_product_information", {"query": "juice"}),
        text_reply("We have **Apple Juice (1000ml)** for $1.99 and more."),
    )
    resp = orchestrator.respond(JIM_ID, "Do you have any juice?")
    assert len(llm.calls) == 2
    assert "Apple Juice (1000ml)" in resp.body
    assert {"name": "Apple Juice (1000ml)", "price": 1.99} in [
        {"name": p["name"], "price": p["price"]} for p in resp.data["products"]
    ]
    tool_msg = llm.calls[1]["messages"][-1]
    assert "Apple Juice (1000ml)" in tool_msg.content
    assert "1.99" in tool_msg.content


class GatedLLM(ScriptedLLM):
    """Parks every model call until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def complete(self, messages, tools=None, tool_choice=None):
        self.calls.append({"messages": list(messages), "tools": tools, "tool_choice": tool_choice})
        self.entered.set()
        assert self.release.wait(5)
        return text_reply("done")


def _respond_in_thread(orch, results, key, user_id, query):
    def run():
        results[key] = orch.respond(user_id, query)
    thread = threading.Thread(target=run)
    thread.start()
    return thread


def test_turns_of_different_users_do_not_wait_on_each_other(dispatcher, history):
    llm = GatedLLM()
    orch = ConversationOrchestrator(llm=llm, dispatcher=dispatcher, history=history)
    results = {}
    jim = _respond_in_thread(orch, results, "jim", JIM_ID, "hello")
    assert llm.entered.wait(5)

    # jim's turn is parked inside the model call
    resp = orch.respond(BENDER_ID, "Do you sell juice?")
    assert "Apple Juice (1000ml)" in resp.body

    llm.release.set()
    jim.join(5)
    assert results["jim"].body == "done"


def test_turns_of_the_same_user_are_serialized(dispatcher, history):
    llm = GatedLLM()
    orch = ConversationOrchestrator(llm=llm, dispatcher=dispatcher, history=history)
    results = {}
    first = _respond_in_thread(orch, results, "first", JIM_ID, "hello")
    assert llm.entered.wait(5)
    second = _respond_in_thread(orch, results, "second", JIM_ID, "Do you sell juice?")
    second.join(0.2)
    assert second.is_alive()

    llm.release.set()
    first.join(5)
    second.join(5)
    contents = [m.content for m in history.get(JIM_ID)]
    start = contents.index("hello")
    assert contents[start:start + 3] == ["hello", "done", "Do you sell juice?"]
    assert "Apple Juice (1000ml)" in contents[start + 3]
