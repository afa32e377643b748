import json
import uuid
import logging
import threading
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from base import HistoryStoreBase, MessageStoreBase, ShopBackendBase
from config.settings import Settings, settings
from errors import ErrorKind, InternalParseError, Unauthorized, UpstreamUnavailable, ValidationError
from guardrails import describe
from llm.openai_client import OpenAIChatClient
from memory.window import KeyedLocks
from models import ChatResponse, Message, ModelToolCall, PendingConfirmation, StatusResponse, ToolResult
from prompts import PROMPTS, greeting, pinned_prefix, sql_hint
from routers.naive_router import NaiveRouter
from tools import TOOL_DECLARATIONS, ToolDispatcher, ToolName
from tools.catalog import parse_tool_name
from utils import get_history_store_class, get_message_store_class, get_router_class, get_shop_backend_class, to_json

FAST_PATH_LINES = 5


class ConversationOrchestrator:
    """Drives one user turn: fast path, then model -> tool -> model.

    Turns of the same user are serialized; turns of different users run concurrently.
    """

    name = "ConversationOrchestrator"

    def __init__(
        self,
        llm: OpenAIChatClient,
        dispatcher: ToolDispatcher,
        history: HistoryStoreBase,
        message_store: Optional[MessageStoreBase] = None,
        router: Optional[NaiveRouter] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        chatbot_name: Optional[str] = None,
    ):
        self.llm = llm
        self.dispatcher = dispatcher
        self.history = history
        self.message_store = message_store
        self.router = router or NaiveRouter()
        self.tools = tools or TOOL_DECLARATIONS
        self.chatbot_name = chatbot_name or settings.chatbot.name
        self._turn_locks = KeyedLocks()
        self._pending: Dict[str, PendingConfirmation] = {}
        self._pending_guard = threading.Lock()
        self.logger = logging.getLogger("app")

    def log(self, request_id: str, user_id: str, msg: str, level: str = "info", **fields: Any):
        extra = {"extra_data": {"request_id": request_id, "user_id": user_id, "agent": self.name, **fields}}
        getattr(self.logger, level)(msg, extra=extra)

    # inbound operations

    def respond(self, user_id: Optional[str], query: Optional[str], username: Optional[str] = None) -> ChatResponse:
        if not user_id:
            raise Unauthorized("Unauthenticated user")
        if query is None or not str(query).strip():
            raise ValidationError("Query text is required")
        user_id = str(user_id)
        request_id = str(uuid.uuid4())

        if not self.llm.is_configured:
            self.log(request_id, user_id, "LLM API key not configured", "warning")
            return ChatResponse(body=PROMPTS['not_configured'])

        with self._turn_locks.get(user_id):
            try:
                return self._turn(request_id, user_id, str(query).strip(), username)
            except Exception:
                self.logger.exception(
                    "Error in chatbot turn",
                    extra={"extra_data": {"request_id": request_id, "user_id": user_id, "agent": self.name}},
                )
                return ChatResponse(body=PROMPTS['generic_error'])

    def status(self, user_id: Optional[str] = None, username: Optional[str] = None) -> StatusResponse:
        if not self.llm.is_configured:
            return StatusResponse(status=False, body=PROMPTS['unavailable'].format(name=self.chatbot_name))
        if not user_id:
            return StatusResponse(status=True, body=PROMPTS['sign_in'].format(name=self.chatbot_name))
        self.history.get(str(user_id), username)
        return StatusResponse(status=True, body=greeting(username))

    def clear_history(self, user_id: Optional[str], username: Optional[str] = None) -> StatusResponse:
        if not user_id:
            raise Unauthorized("Unauthenticated user")
        user_id = str(user_id)
        with self._turn_locks.get(user_id):
            self._take_pending(user_id)
            self.history.reset(user_id, username)
        self.logger.info("Cleared chat history", extra={"extra_data": {"user_id": user_id, "agent": self.name}})
        return StatusResponse(status=True, body=greeting(username))

    # turn state machine

    def _turn(self, request_id: str, user_id: str, query: str, username: Optional[str]) -> ChatResponse:
        # creates the session with a personalized prefix on first contact
        self.history.get(user_id, username)

        pending = self._take_pending(user_id)
        self.history.append(user_id, Message.user(query))
        self._persist(request_id, user_id, query, "user")

        if pending is not None:
            if self.router.is_affirmative(query):
                self.log(request_id, user_id, f"Confirmed pending {pending.candidate_action.name}")
                return self._run_confirmed(request_id, user_id, pending)
            self.log(request_id, user_id, "Discarded pending confirmation")

        intent, _, meta = self.router.route(query)
        if intent == "product_query":
            fast = self._fast_path(request_id, user_id, query, meta)
            if fast is not None:
                return fast

        try:
            reply = self.llm.complete(self.history.get(user_id), tools=self.tools, tool_choice="auto")
        except UpstreamUnavailable as e:
            self.log(request_id, user_id, f"Model call failed: {e.message}", "error")
            return ChatResponse(body=PROMPTS['model_error'])

        if not reply.wants_tool:
            self.log(request_id, user_id, "Regular conversation response")
            return self._finish(request_id, user_id, reply.content or "")

        return self._run_tool(request_id, user_id, reply.content, reply.tool_calls[0])

    def _fast_path(self, request_id: str, user_id: str, query: str, meta: Dict[str, Any]) -> Optional[ChatResponse]:
        result = self.dispatcher.invoke(ToolName.GET_PRODUCT_INFORMATION.value, {"query": query}, user_id)
        if not result.ok:
            self.log(request_id, user_id, f"Fast path failed, falling back to model: {result.error}", "warning")
            return None
        products = result.data.get("products") or []
        if not products:
            return None
        self.log(request_id, user_id, "Answered product query directly", matched=meta.get("matched"))
        product_list = "\n".join(f"{p['name']} - ${p['price']}" for p in products[:FAST_PATH_LINES])
        if len(products) > FAST_PATH_LINES:
            body = PROMPTS['fast_path_many'].format(product_list=product_list, more=len(products) - FAST_PATH_LINES)
        else:
            body = PROMPTS['fast_path_few'].format(product_list=product_list)
        return self._finish(request_id, user_id, body, data=result.data)

    def _run_tool(self, request_id: str, user_id: str, content: Optional[str], call: ModelToolCall) -> ChatResponse:
        tool = parse_tool_name(call.name)
        if tool is None:
            self.log(request_id, user_id, f"Model requested unknown tool {call.name!r}", "warning")
            return self._finish(request_id, user_id, PROMPTS['unknown_tool'])

        try:
            arguments = _parse_arguments(call.arguments)
        except InternalParseError as e:
            self.log(request_id, user_id, f"Malformed arguments for {tool.value}: {e.message}", "warning")
            return ChatResponse(body=PROMPTS['rephrase'])

        self.history.append(user_id, Message(
            role="assistant",
            content=content or "",
            tool_name=tool.value,
            tool_call_id=call.id,
            tool_arguments=call.arguments or "{}",
        ))
        result = self.dispatcher.invoke(tool.value, arguments, user_id)
        self.log(request_id, user_id, f"Tool {tool.value} returned", ok=result.ok, error_kind=_kind(result))
        self.history.append(user_id, Message(
            role="tool",
            content=to_json(result.to_payload()),
            tool_name=tool.value,
            tool_call_id=call.id,
        ))

        immediate = self._immediate_response(user_id, tool, result)
        if immediate is not None:
            self.history.append(user_id, Message.assistant(immediate.body))
            self._persist(request_id, user_id, immediate.body, "assistant")
            return immediate

        messages = self.history.get(user_id)
        if tool is ToolName.EXECUTE_SQL_QUERY and not result.ok:
            # transient, never stored in the history
            messages = messages + [Message.system(sql_hint())]
        try:
            final = self.llm.complete(messages, tools=self.tools, tool_choice="none")
        except UpstreamUnavailable as e:
            self.log(request_id, user_id, f"Follow-up model call failed: {e.message}", "error")
            return ChatResponse(body=PROMPTS['followup_error'])
        return self._finish(request_id, user_id, final.content or "", data=result.to_payload())

    def _run_confirmed(self, request_id: str, user_id: str, pending: PendingConfirmation) -> ChatResponse:
        action = pending.candidate_action
        result = self.dispatcher.invoke(action.name, action.arguments, user_id)
        tool = parse_tool_name(action.name)
        response = self._immediate_response(user_id, tool, result)
        if response is None:
            response = ChatResponse(body=PROMPTS['generic_error'])
        self.history.append(user_id, Message.assistant(response.body))
        self._persist(request_id, user_id, response.body, "assistant")
        return response

    def _immediate_response(self, user_id: str, tool: ToolName, result: ToolResult) -> Optional[ChatResponse]:
        """Responses for results that describe themselves, without a follow-up model call."""
        payload = result.to_payload()
        if result.pending_confirmation is not None:
            with self._pending_guard:
                self._pending[user_id] = result.pending_confirmation
            candidate = result.pending_confirmation.candidate
            body = PROMPTS['confirm_product'].format(name=candidate["productName"], price=candidate["price"])
            return ChatResponse(action="confirm", body=body, data=payload)
        if result.error_kind is ErrorKind.GUARDRAIL_DENIED:
            reason = result.data.get("reason") if isinstance(result.data, dict) else None
            return ChatResponse(body=PROMPTS['guardrail_denied'].format(reason=describe(reason)), data=payload)
        if result.error_kind is ErrorKind.UNAUTHORIZED:
            return ChatResponse(body=PROMPTS['unauthorized_command'], data=payload)

        if tool is ToolName.ADD_TO_BASKET or tool is ToolName.REMOVE_FROM_BASKET:
            if not result.ok:
                template = PROMPTS['add_failed'] if tool is ToolName.ADD_TO_BASKET else PROMPTS['remove_failed']
                return ChatResponse(body=template.format(error=result.error), data=payload)
            basket = result.data["basket"]
            body = PROMPTS['basket_changed'].format(message=result.data["message"], count=len(basket["products"]))
            return ChatResponse(body=body, data=payload)
        if tool is ToolName.GET_BASKET:
            if not result.ok:
                return ChatResponse(body=PROMPTS['basket_error'].format(error=result.error), data=payload)
            if result.data.get("empty"):
                return ChatResponse(body=PROMPTS['empty_basket'], data=payload)
        if tool is ToolName.GET_USER_INFORMATION and not result.ok:
            return ChatResponse(body=PROMPTS['user_not_found'])
        return None

    def _finish(self, request_id: str, user_id: str, body: str, data: Any = None) -> ChatResponse:
        self.history.append(user_id, Message.assistant(body))
        self._persist(request_id, user_id, body, "assistant")
        return ChatResponse(body=body, data=data)

    def _take_pending(self, user_id: str) -> Optional[PendingConfirmation]:
        with self._pending_guard:
            return self._pending.pop(user_id, None)

    def _persist(self, request_id: str, user_id: str, text: str, role: str) -> None:
        if self.message_store is None:
            return
        try:
            self.message_store.append(user_id, text, role)
        except SQLAlchemyError as e:
            self.log(request_id, user_id, f"Could not persist {role} message: {e}", "warning")


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    try:
        arguments = json.loads(raw or "{}")
    except ValueError as e:
        raise InternalParseError(f"tool arguments are not valid JSON: {e}") from e
    if not isinstance(arguments, dict):
        raise InternalParseError("tool arguments must be a JSON object")
    return arguments


def _kind(result: ToolResult) -> Optional[str]:
    return result.error_kind.value if result.error_kind else None


def build_orchestrator(cfg: Settings = settings) -> ConversationOrchestrator:
    backend_name = cfg.modules.shop_backend_name
    shop_cls = get_shop_backend_class(backend_name)
    if backend_name == "ShopLocalClient":
        shop: ShopBackendBase = shop_cls(seed=cfg.database.seed_demo_data)
    else:
        shop = shop_cls(database_url=cfg.database.url)

    history_name = cfg.modules.history_store_name
    history_kwargs: Dict[str, Any] = {
        "prefix_factory": pinned_prefix,
        "max_history_length": cfg.history.max_history_length,
    }
    if history_name == "RedisHistoryStore":
        history_kwargs.update(redis_url=cfg.history.redis_url, key_prefix=cfg.history.redis_prefix)
    history = get_history_store_class(history_name)(**history_kwargs)

    message_store = None
    if cfg.modules.message_store_name:
        # the chat log lives in the shop database
        message_store = get_message_store_class(cfg.modules.message_store_name)(engine=getattr(shop, "engine", None))

    return ConversationOrchestrator(
        llm=OpenAIChatClient(cfg.openai),
        dispatcher=ToolDispatcher(shop, tools_cfg=cfg.tools, chatbot_cfg=cfg.chatbot),
        history=history,
        message_store=message_store,
        router=get_router_class(cfg.modules.router_name)(),
        chatbot_name=cfg.chatbot.name,
    )
