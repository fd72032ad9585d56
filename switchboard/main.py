"""
FastAPI application: the Switchboard entry point.

Wires the pieces together at startup:
  key-value backend → conversation store → provider router
  → documentation context → message pipeline, plus the wire log on the event bus

and exposes them to a local UI under /api/v1/.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from switchboard import __version__
from switchboard.config import get_config
from switchboard.context import ContextMiddleware
from switchboard.errors import (
    AllProvidersExhaustedError,
    ConversationNotFoundError,
    NoProviderConfiguredError,
)
from switchboard.events import EventBus
from switchboard.pipeline import MessagePipeline
from switchboard.providers.router import ProviderRouter
from switchboard.storage.backends import KeyValueBackend, make_backend
from switchboard.storage.conversation_store import ConversationStore
from switchboard.storage.models import ConversationSettings
from switchboard.wiretap import WireLog

logger = logging.getLogger(__name__)


def _setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, str(log_cfg.get("level", "INFO")).upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        from pathlib import Path
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


@dataclass
class Engine:
    """Everything a running Switchboard needs, built once from config."""
    bus: EventBus
    backend: KeyValueBackend
    store: ConversationStore
    router: ProviderRouter
    pipeline: MessagePipeline
    wire_log: WireLog | None = None

    async def aclose(self):
        await self.pipeline.close()
        if self.wire_log:
            self.wire_log.close()
        await self.backend.close()


async def create_engine(cfg: dict, context_sources: dict | None = None) -> Engine:
    """Build and load every component described by the config dict."""
    bus = EventBus()

    storage_cfg = cfg.get("storage", {})
    backend_type = storage_cfg.get("backend", "sqlite")
    backend_kwargs = {"path": storage_cfg["path"]} if backend_type == "sqlite" and storage_cfg.get("path") else {}
    backend = make_backend(backend_type, **backend_kwargs)

    conv_cfg = cfg.get("conversations", {})
    store = ConversationStore(backend, bus=bus, default_settings=conv_cfg.get("defaults"))

    wire_log = None
    wire_cfg = cfg.get("wiretap", {})
    if wire_cfg.get("enabled", False):
        wire_log = WireLog(wire_cfg.get("path", "./data/wire.jsonl"))
        wire_log.attach(bus, store)

    router = ProviderRouter.from_config(cfg.get("providers", {}), cfg.get("routing", {}))
    context = ContextMiddleware.from_config(cfg.get("context_rules", {}), context_sources)

    pipeline = MessagePipeline(
        store,
        router,
        bus=bus,
        context_middleware=context,
        max_messages=int(conv_cfg.get("max_messages", 1000)),
        context_window=int(conv_cfg.get("context_window", 20)),
        queue_size=int(conv_cfg.get("queue_size", 100)),
    )

    await store.load()

    logger.info("Storage: %s (%d conversations)", backend_type, len(store))
    logger.info("Providers: %s", [p.name for p in router.configured_providers()] or "none configured")
    logger.info("Context rules: %s", context.list_rules())
    logger.info("Wiretap: %s", wire_cfg.get("path") if wire_log else "disabled")
    return Engine(bus=bus, backend=backend, store=store, router=router, pipeline=pipeline, wire_log=wire_log)


# ---------------------------------------------------------------------------
# Globals, initialized at startup
# ---------------------------------------------------------------------------
engine: Engine | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    global engine

    cfg = get_config()
    _setup_logging(cfg)
    engine = await create_engine(cfg)

    logger.info(
        "Switchboard started, listening on %s:%s",
        cfg.get("server", {}).get("host", "127.0.0.1"),
        cfg.get("server", {}).get("port", 8765),
    )

    yield

    logger.info("Switchboard shutting down")
    await engine.aclose()
    engine = None


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Switchboard",
    description="Conversation orchestration across a fixed chain of AI providers.",
    version=__version__,
    lifespan=lifespan,
)


def _summary(conversation) -> dict:
    return {
        "id": conversation.id,
        "title": conversation.title,
        "created_at": conversation.created_at,
        "updated_at": conversation.updated_at,
        "message_count": conversation.metadata.message_count,
        "starred": conversation.metadata.starred,
        "archived": conversation.metadata.archived,
        "tags": sorted(conversation.metadata.tags),
        "active": conversation.id == engine.store.active_conversation_id,
    }


def _not_found(conv_id: str) -> JSONResponse:
    return JSONResponse({"error": f"Conversation not found: {conv_id}"}, status_code=404)


def _check_options(options) -> str | None:
    """Error text for a send body's options, or None if they can be applied."""
    if not isinstance(options, dict):
        return "options must be an object"
    unknown = set(options) - ConversationSettings.field_names()
    if unknown:
        return f"Unknown option(s): {', '.join(sorted(unknown))}"
    return None


async def _send(content: str, conv_id: str | None, options) -> JSONResponse:
    error = _check_options(options)
    if error:
        return JSONResponse({"error": error}, status_code=400)
    try:
        result = await engine.pipeline.send_message(content, conversation_id=conv_id, **options)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except ConversationNotFoundError as e:
        return JSONResponse(e.to_dict(), status_code=404)
    except NoProviderConfiguredError as e:
        return JSONResponse(e.to_dict(), status_code=503)
    except AllProvidersExhaustedError as e:
        return JSONResponse(e.to_dict(), status_code=502)
    return JSONResponse(result.to_dict())


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

@app.get("/api/v1/conversations")
async def list_conversations(include_archived: bool = True):
    return JSONResponse({
        "active_conversation_id": engine.store.active_conversation_id,
        "conversations": [_summary(c) for c in engine.store.list_conversations(include_archived)],
    })


@app.post("/api/v1/conversations")
async def create_conversation(request: Request):
    body = await _json_body(request)
    conversation = await engine.store.create_conversation(body.get("title"))
    return JSONResponse(conversation.to_dict(), status_code=201)


@app.get("/api/v1/conversations/{conv_id}")
async def get_conversation(conv_id: str):
    conversation = engine.store.get_conversation(conv_id)
    if conversation is None:
        return _not_found(conv_id)
    return JSONResponse(conversation.to_dict())


@app.post("/api/v1/conversations/{conv_id}/switch")
async def switch_conversation(conv_id: str):
    if not await engine.store.switch_conversation(conv_id):
        return _not_found(conv_id)
    return JSONResponse({"active_conversation_id": conv_id})


@app.delete("/api/v1/conversations/{conv_id}")
async def delete_conversation(conv_id: str):
    if not await engine.store.delete_conversation(conv_id):
        return _not_found(conv_id)
    return JSONResponse({"deleted": conv_id, "active_conversation_id": engine.store.active_conversation_id})


@app.patch("/api/v1/conversations/{conv_id}/settings")
async def update_settings(conv_id: str, request: Request):
    body = await _json_body(request)
    try:
        updated = await engine.store.update_settings(conv_id, **body)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    if not updated:
        return _not_found(conv_id)
    return JSONResponse(engine.store.get_conversation(conv_id).to_dict()["settings"])


@app.patch("/api/v1/conversations/{conv_id}/metadata")
async def update_metadata(conv_id: str, request: Request):
    body = await _json_body(request)
    updated = await engine.store.update_metadata(
        conv_id,
        starred=body.get("starred"),
        archived=body.get("archived"),
        add_tags=body.get("add_tags"),
        remove_tags=body.get("remove_tags"),
    )
    if not updated:
        return _not_found(conv_id)
    return JSONResponse(engine.store.get_conversation(conv_id).metadata.to_dict())


@app.put("/api/v1/conversations/{conv_id}/title")
async def rename_conversation(conv_id: str, request: Request):
    body = await _json_body(request)
    if not await engine.store.rename_conversation(conv_id, str(body.get("title", ""))):
        if conv_id in engine.store:
            return JSONResponse({"error": "Title must not be empty"}, status_code=400)
        return _not_found(conv_id)
    return JSONResponse({"id": conv_id, "title": engine.store.get_conversation(conv_id).title})


@app.get("/api/v1/conversations/{conv_id}/export")
async def export_conversation(conv_id: str, format: str = "json"):
    """
    Export a conversation.

    Query params:
        format  str   json | markdown | text | md | txt  (default: json)
    """
    try:
        content = engine.store.export_conversation(conv_id, format)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    if content is None:
        return _not_found(conv_id)

    media_type = {
        "json": "application/json",
        "markdown": "text/markdown",
        "md": "text/markdown",
    }.get(format.lower(), "text/plain")
    return Response(content=content.encode("utf-8"), media_type=media_type)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@app.post("/api/v1/conversations/{conv_id}/messages")
async def send_to_conversation(conv_id: str, request: Request):
    body = await _json_body(request)
    return await _send(str(body.get("content", "")), conv_id, body.get("options") or {})


@app.post("/api/v1/chat")
async def chat(request: Request):
    """Send to the active conversation (or body.conversation_id)."""
    body = await _json_body(request)
    return await _send(str(body.get("content", "")), body.get("conversation_id"), body.get("options") or {})


# ---------------------------------------------------------------------------
# Introspection
# ---------------------------------------------------------------------------

@app.get("/api/v1/search")
async def search(q: str = ""):
    results = engine.store.search_conversations(q)
    return JSONResponse({
        "query": q,
        "results": [
            {**_summary(r["conversation"]), "relevance": round(r["relevance"], 3)}
            for r in results
        ],
    })


@app.get("/api/v1/stats")
async def stats():
    return JSONResponse(engine.store.get_stats())


@app.get("/api/v1/providers")
async def providers():
    return JSONResponse(await engine.router.health())


@app.get("/api/v1/status")
async def status():
    return JSONResponse({
        "version": __version__,
        "active_conversation_id": engine.store.active_conversation_id,
        "processing": engine.pipeline.is_processing,
        "queue_depth": engine.pipeline.queue_depth,
        "providers_configured": [p.name for p in engine.router.configured_providers()],
    })


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
