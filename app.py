import json
import time
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST, REGISTRY

from agent import build_orchestrator
from auth import Identity, optional_identity, require_identity
from config.settings import settings
from errors import ChatbotError, Unauthorized, UpstreamUnavailable, ValidationError
from models import ChatRequest, ChatResponse, SaveMessageRequest, StatusResponse, StoredMessage


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "level": record.levelname,
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "msg": record.getMessage(),
            "logger": record.name,
        }
        if hasattr(record, "extra_data"):
            base.update(getattr(record, "extra_data"))
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, default=str)


handler = logging.StreamHandler()
if settings.logging.json_logging:
    handler.setFormatter(JsonFormatter())
else:
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
logger = logging.getLogger("app")
logger.setLevel(settings.logging.level)
logger.addHandler(handler)
logger.propagate = False

REQUEST_COUNTER: Optional[Counter] = None
REQUEST_LATENCY: Optional[Histogram] = None


def init_metrics(registry=REGISTRY) -> None:
    global REQUEST_COUNTER, REQUEST_LATENCY
    if REQUEST_COUNTER is None:
        REQUEST_COUNTER = Counter(
            "chatbot_requests_total",
            "Total chatbot requests",
            ["action", "status"],
            registry=registry,
        )
    if REQUEST_LATENCY is None:
        REQUEST_LATENCY = Histogram(
            "chatbot_request_seconds",
            "Latency of chatbot requests in seconds",
            registry=registry,
        )


orchestrator = build_orchestrator()
app = FastAPI(title="Storefront Shopping Assistant", version="1.0.0")


@app.exception_handler(ChatbotError)
def chatbot_error_handler(request: Request, exc: ChatbotError):
    init_metrics()
    REQUEST_COUNTER.labels(action=request.url.path.rsplit("/", 1)[-1], status=str(exc.status_code)).inc()
    logger.warning(
        f"{exc.kind.value}: {exc.message}",
        extra={"extra_data": {"path": request.url.path, "status": exc.status_code, "reason": exc.reason}},
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _known_user(identity: Identity) -> Identity:
    """Check the token subject against the shop's users and fill in the username."""
    user = orchestrator.dispatcher.shop.get_user(identity.user_id)
    if user is None:
        raise Unauthorized("User not found")
    return Identity(user_id=str(user["id"]), username=identity.username or user.get("username"))


def _message_store():
    if orchestrator.message_store is None:
        raise UpstreamUnavailable("Chat log is not configured")
    return orchestrator.message_store


@app.get("/healthz", response_class=PlainTextResponse)
def healthz():
    return "ok"


@app.get("/metrics")
def metrics():
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/rest/chatbot/status", response_model=StatusResponse)
def status(identity: Optional[Identity] = Depends(optional_identity)):
    user = None
    if identity is not None:
        try:
            user = _known_user(identity)
        except Unauthorized:
            user = None
    if user is None:
        return orchestrator.status()
    return orchestrator.status(user.user_id, user.username)


@app.post("/rest/chatbot/respond", response_model=ChatResponse)
def respond(req: ChatRequest, identity: Identity = Depends(require_identity)):
    init_metrics()
    start = time.time()
    user = _known_user(identity)
    if req.query is None or not req.query.strip():
        raise ValidationError("Query text is required")

    resp = orchestrator.respond(user.user_id, req.query, user.username)

    REQUEST_COUNTER.labels(action=resp.action, status="200").inc()
    REQUEST_LATENCY.observe(time.time() - start)
    logger.info("Handled chatbot query", extra={"extra_data": {"user_id": user.user_id, "action": resp.action}})
    return resp


@app.post("/rest/chatbot/clear", response_model=StatusResponse)
def clear(identity: Identity = Depends(require_identity)):
    user = _known_user(identity)
    return orchestrator.clear_history(user.user_id, user.username)


@app.get("/rest/chatbot/messages")
def get_messages(identity: Identity = Depends(require_identity)) -> Dict[str, Any]:
    user = _known_user(identity)
    rows = _message_store().list_for_user(user.user_id)
    return {"status": "success", "data": [StoredMessage(**r).model_dump(mode="json") for r in rows]}


@app.post("/rest/chatbot/messages")
def save_message(req: SaveMessageRequest, identity: Identity = Depends(require_identity)) -> Dict[str, Any]:
    user = _known_user(identity)
    if not req.message or not req.role:
        raise ValidationError("Message and role are required")
    row = _message_store().append(user.user_id, req.message, req.role)
    return {"status": "success", "data": StoredMessage(**row).model_dump(mode="json")}


@app.delete("/rest/chatbot/messages")
def delete_messages(identity: Identity = Depends(require_identity)) -> Dict[str, Any]:
    user = _known_user(identity)
    deleted = _message_store().delete_for_user(user.user_id)
    return {"status": "success", "deleted": deleted}
