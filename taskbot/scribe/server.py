"""
Taskbot Server

FastAPI server for the WhatsApp webhook and the dashboard API.

Endpoints:
- POST /webhook/whatsapp: Twilio webhook endpoint
- GET /health, /api/health: Health check
- GET /api/items: Filtered item listing (structural search)
- POST /api/items: Save an item directly
- PATCH /api/items/{id}/status: Update item status
- DELETE /api/items/{id}: Delete an item
- GET /api/stats: Counts by type, status, priority, category
- GET /api/categories: Distinct categories
- POST /api/query: Ask a question (read path)

Pipeline:
1. Receive webhook event
2. Parse with the Twilio handler, check the sender allow-list
3. Acknowledge immediately; classify and route in a background task
4. Send the reply through the configured reply channel
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError

from ..common.config import TaskbotConfig, configure_logging, ensure_directories, load_config
from ..common.llm_client import LLMClient
from ..common.record_store import (
    ItemValidationError,
    RecordNotFoundError,
    RecordStore,
    SQLiteRecordStore,
    StoreError,
)
from ..common.schemas import InboundMessage, ItemStatus, QueryFilters
from ..retriever.query_analyzer import QueryAnalyzer
from ..retriever.searcher import SearchExecutor
from ..retriever.synthesizer import AnswerSynthesizer
from .classifier import IntentClassifier
from .handlers import EMPTY_TWIML, TwilioHandler
from .pipeline import MessagePipeline
from .replier import BaseReplier, ReplyError, build_replier

logger = logging.getLogger("taskbot.scribe.server")


@dataclass
class ServerState:
    """Components built once at startup and shared by every request."""
    config: TaskbotConfig
    llm_client: LLMClient
    store: RecordStore
    pipeline: MessagePipeline
    executor: SearchExecutor
    handler: TwilioHandler
    replier: BaseReplier


def build_state(config: TaskbotConfig) -> ServerState:
    """Construct and wire every component from configuration."""
    llm_client = LLMClient.from_config(config.llm)
    if llm_client.is_available:
        logger.info("LLM ready (%s, %s)", llm_client.provider, llm_client.model)
    else:
        logger.warning("LLM not available, running on heuristics only")

    store = SQLiteRecordStore(config.store.path)
    logger.info("Record store at %s", config.store.path)

    timeout = config.llm.timeout
    executor = SearchExecutor(
        store,
        hybrid_min_overlap=config.retriever.hybrid_min_overlap,
        default_limit=config.retriever.default_limit,
    )
    pipeline = MessagePipeline(
        classifier=IntentClassifier(llm_client, timeout=timeout),
        store=store,
        analyzer=QueryAnalyzer(llm_client, timeout=timeout),
        executor=executor,
        synthesizer=AnswerSynthesizer(store, llm_client, timeout=timeout),
        confidence_threshold=config.scribe.confidence_threshold,
        bot_prefix=config.scribe.bot_prefix,
        max_reply_length=config.scribe.max_reply_length,
    )
    handler = TwilioHandler(allowed_senders=config.scribe.allowed_senders)
    if not config.scribe.allowed_senders:
        logger.warning("No allowed senders configured, accepting messages from anyone")

    return ServerState(
        config=config,
        llm_client=llm_client,
        store=store,
        pipeline=pipeline,
        executor=executor,
        handler=handler,
        replier=build_replier(config),
    )


# =============================================================================
# Request Models
# =============================================================================

class StatusUpdate(BaseModel):
    """Status change request"""
    owner: str
    status: ItemStatus


class QueryRequest(BaseModel):
    """Natural-language question"""
    owner: str
    query: str


class ItemCreate(BaseModel):
    """Direct item creation (validated by the store)"""
    owner: str
    item: Dict[str, Any]


# =============================================================================
# Background Tasks
# =============================================================================

async def process_message(state: ServerState, message: InboundMessage) -> None:
    """Run one message through the pipeline and deliver the reply."""
    reply = await state.pipeline.handle(message)
    logger.info(
        "Message %s handled: %s",
        message.correlation_id or "-",
        reply.kind.value,
    )
    if not reply.should_send:
        return
    try:
        await state.replier.send(message.sender, reply.text)
    except ReplyError as e:
        logger.error("Could not deliver reply: %s", e)


# =============================================================================
# Endpoints
# =============================================================================

router = APIRouter()


def get_state(request: Request) -> ServerState:
    state = getattr(request.app.state, "taskbot", None)
    if state is None:
        raise HTTPException(status_code=503, detail="Server not initialized")
    return state


@router.get("/health")
@router.get("/api/health")
async def health(request: Request):
    """Health check endpoint"""
    state = getattr(request.app.state, "taskbot", None)
    return {
        "status": "healthy",
        "service": "taskbot",
        "initialized": state is not None,
        "llm_available": state.llm_client.is_available if state else False,
        "full_text_index": getattr(state.store, "fts_enabled", False) if state else False,
    }


@router.post("/webhook/whatsapp")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    state: ServerState = Depends(get_state),
):
    """
    Handle Twilio WhatsApp webhooks.

    Always acknowledges with empty TwiML so Twilio does not retry; the
    reply is sent separately once the message is processed.
    """
    body = await request.body()
    form = state.handler.parse_form(body)
    message = state.handler.parse_event(form)

    if message and state.handler.should_process(message):
        background_tasks.add_task(process_message, state, message)

    return Response(content=EMPTY_TWIML, media_type="application/xml")


@router.get("/api/items")
async def list_items(
    owner: str,
    type: Optional[str] = None,
    priority: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    deadline_from: Optional[date] = None,
    deadline_to: Optional[date] = None,
    limit: Optional[int] = None,
    state: ServerState = Depends(get_state),
):
    """Filtered listing; bypasses query analysis."""
    try:
        filters = QueryFilters(
            type=type,
            priority=priority,
            status=status,
            category=category,
            deadline_from=deadline_from,
            deadline_to=deadline_to,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))
    if limit is not None and limit <= 0:
        raise HTTPException(status_code=422, detail="limit must be positive")

    records = await state.executor.browse(owner, filters, limit)
    return {
        "count": len(records),
        "items": [r.model_dump(mode="json") for r in records],
    }


@router.post("/api/items", status_code=201)
async def create_item(payload: ItemCreate, state: ServerState = Depends(get_state)):
    """Save an item without classification"""
    try:
        record_id = state.store.save(payload.owner, payload.item)
    except ItemValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    record = state.store.get(payload.owner, record_id)
    return record.model_dump(mode="json")


@router.patch("/api/items/{item_id}/status")
async def update_status(item_id: int, update: StatusUpdate, state: ServerState = Depends(get_state)):
    """Change an item's status"""
    try:
        record = state.store.update_status(update.owner, item_id, update.status)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Item not found")
    return record.model_dump(mode="json")


@router.delete("/api/items/{item_id}")
async def delete_item(item_id: int, owner: str, state: ServerState = Depends(get_state)):
    """Delete an item"""
    try:
        state.store.delete(owner, item_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Item not found")
    return {"status": "deleted", "id": item_id}


@router.get("/api/stats")
async def get_stats(owner: str, state: ServerState = Depends(get_state)):
    """Item counts for one owner"""
    return state.store.stats(owner)


@router.get("/api/categories")
async def get_categories(owner: str, state: ServerState = Depends(get_state)):
    """Distinct categories for one owner"""
    return {"categories": state.store.categories(owner)}


@router.post("/api/query")
async def ask(request: QueryRequest, state: ServerState = Depends(get_state)):
    """Answer a natural-language question over the owner's items"""
    if not request.query.strip():
        raise HTTPException(status_code=422, detail="query must not be empty")
    answer = await state.pipeline.answer(request.query.strip(), request.owner)
    return {"answer": answer}


# =============================================================================
# App Factory
# =============================================================================

async def _store_error_handler(request: Request, exc: StoreError):
    logger.error("Store error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Record store unavailable"})


def create_app(state: Optional[ServerState] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        state: Pre-built components (tests). When omitted, components are
            built from load_config() at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "taskbot", None) is None:
            load_dotenv()
            config = load_config()
            configure_logging(config.log_level)
            ensure_directories()
            logger.info("Starting up...")
            app.state.taskbot = build_state(config)
            logger.info("Ready to receive messages")
        yield
        logger.info("Shutting down...")

    app = FastAPI(
        title="Taskbot",
        description="Task and idea capture over WhatsApp",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.taskbot = state
    app.include_router(router)
    app.add_exception_handler(StoreError, _store_error_handler)
    return app


app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Taskbot server"""
    import uvicorn

    load_dotenv()
    config = load_config()
    configure_logging(config.log_level)
    port = config.scribe.port

    logger.info("Starting server on port %d", port)
    uvicorn.run(
        "taskbot.scribe.server:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
