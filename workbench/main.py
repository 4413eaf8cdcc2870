"""Compliance Workbench — FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from workbench.backends.assessment import AssessmentChatBackend
from workbench.backends.documents import DocumentChatBackend
from workbench.config import settings
from workbench.db.database import Database
from workbench.models.finding import Finding
from workbench.models.message import GLOBAL_THREAD, ChatMessage, ThreadKey
from workbench.models.source import Source
from workbench.orchestrator.confidence import classify, confidence_label, normalize_percent
from workbench.orchestrator.conversation import (
    CSV_ERROR_STATUS,
    ConversationService,
    ThreadBusyError,
)
from workbench.orchestrator.csv_export import MEDIA_TYPE, CsvExporter
from workbench.orchestrator.editing import EditRejected, MessageEditController
from workbench.orchestrator.findings import build_question_for_finding, normalize_findings
from workbench.orchestrator.suggestions import build_suggestions
from workbench.orchestrator.system_prompt import SystemPromptSettings
from workbench.orchestrator.threads import ChatThreadStore

logger = logging.getLogger(__name__)

db = Database(settings.storage_path)
store = ChatThreadStore()
editor = MessageEditController(store)
exporter = CsvExporter()
document_backend = DocumentChatBackend()
prompts = SystemPromptSettings(db, document_backend)
conversations = ConversationService(
    store,
    editor,
    assessment_backend=AssessmentChatBackend(),
    document_backend=document_backend,
    prompts=prompts,
    exporter=exporter,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await db.connect()
    except aiosqlite.Error as exc:
        # Overrides simply won't be persisted
        logger.warning("Local storage unavailable at %s: %s", db.path, exc)
    yield
    await db.close()


app = FastAPI(
    title="Compliance Workbench",
    description="Findings normalization and assessment chat for compliance reviews",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Request models ---


class AssessmentPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    machine_name: str | None = Field(default=None, alias="macchinarioNome")
    findings: Any = Field(default=None, alias="nonConformitaRilevate")
    recommendations: Any = Field(default=None, alias="raccomandazioni")


class QuestionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str
    display_name: str = Field(default="", alias="displayName")


class BeginEditRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    thread: str
    message_id: str = Field(alias="messageId")


class DraftRequest(BaseModel):
    text: str = ""


class KeyRequest(BaseModel):
    key: str


class RestartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    save_csv: bool = Field(default=False, alias="saveCsv")


class SystemPromptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    system_prompt: str = Field(default="", alias="systemPrompt")


# --- Serialization ---


def _source_json(source: Source) -> dict:
    percent = normalize_percent(source.confidence)
    return {
        "reference": source.reference,
        "excerpt": source.excerpt,
        "confidence": source.confidence,
        "percent": percent,
        "tier": classify(percent),
        "label": confidence_label(source.confidence),
    }


def _finding_json(finding: Finding) -> dict:
    return {
        "text": finding.text,
        "placeholder": finding.placeholder,
        "question": build_question_for_finding(finding.text),
        "sources": [_source_json(s) for s in finding.sources],
    }


def _message_json(message: ChatMessage) -> dict:
    return {
        "id": message.id,
        "role": message.role.value,
        "text": message.text,
        "timestamp": message.timestamp,
        "pending": message.pending,
        "stale": message.stale,
        "sources": [_source_json(s) for s in message.sources],
    }


def _thread_json(key: ThreadKey) -> dict:
    thread = store.ensure(key)
    return {
        "key": thread.key,
        "displayName": thread.display_name,
        "busy": conversations.is_busy(key),
        "messages": [_message_json(m) for m in store.snapshot(key)],
    }


def _edit_json() -> dict:
    state = editor.state
    if state is None:
        return {"editing": False}
    return {
        "editing": True,
        "thread": state.thread_key,
        "messageId": state.message_id,
        "draft": state.draft,
        "canSave": state.can_save,
    }


def _thread_key(raw: str) -> ThreadKey:
    if raw == GLOBAL_THREAD:
        return GLOBAL_THREAD
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(status_code=404, detail="Thread not found")


# --- Routes ---


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/assessments/view")
async def view_assessment(assessment: AssessmentPayload):
    """Normalize an assessment's findings and open its chat thread."""
    findings = normalize_findings(assessment.findings)
    recommendations = normalize_findings(assessment.recommendations)
    store.ensure(assessment.id, assessment.machine_name or "")
    return {
        "findings": [_finding_json(f) for f in findings],
        "recommendations": [_finding_json(f) for f in recommendations],
        "suggestions": [
            {"label": s.label, "question": s.question}
            for s in build_suggestions(findings, recommendations)
        ],
        "thread": _thread_json(assessment.id),
    }


@app.get("/api/threads/{key}")
async def get_thread(key: str):
    return _thread_json(_thread_key(key))


@app.post("/api/threads/{key}/messages")
async def post_message(key: str, req: QuestionRequest):
    """Ask a question; returns once the reply placeholder has been patched."""
    thread_key = _thread_key(key)
    if not req.question.strip():
        raise HTTPException(status_code=400, detail="La domanda è obbligatoria")
    try:
        reply = await conversations.submit(thread_key, req.question, req.display_name)
    except ThreadBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    # None when the thread was reset while waiting
    return {
        "reply": _message_json(reply) if reply else None,
        "thread": _thread_json(thread_key),
    }


@app.post("/api/threads/{key}/reset")
async def reset_thread(key: str):
    thread_key = _thread_key(key)
    conversations.reset(thread_key)
    return _thread_json(thread_key)


@app.get("/api/threads/{key}/export")
async def export_thread(key: str):
    """Download a thread as CSV."""
    thread_key = _thread_key(key)
    try:
        snapshot = exporter.snapshot(store.ensure(thread_key))
        csv = exporter.generate(snapshot)
        filename = exporter.filename(snapshot)
    except Exception:
        logger.exception("CSV export failed for thread %r", thread_key)
        return JSONResponse(status_code=500, content={"status": CSV_ERROR_STATUS})
    return Response(
        content=csv.encode("utf-8"),
        media_type=MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/chatbot/restart")
async def restart_chatbot(req: RestartRequest):
    """Reset the global chat, optionally exporting it first."""
    result = conversations.restart(req.save_csv)
    return {
        "status": result.status,
        "csv": result.csv,
        "filename": result.filename,
        "exported": result.exported,
        "thread": _thread_json(GLOBAL_THREAD),
    }


@app.get("/api/edit")
async def get_edit():
    return _edit_json()


@app.post("/api/edit/begin")
async def begin_edit(req: BeginEditRequest):
    try:
        editor.begin_edit(_thread_key(req.thread), req.message_id)
    except EditRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _edit_json()


@app.post("/api/edit/input")
async def edit_input(req: DraftRequest):
    try:
        editor.on_input(req.text)
    except EditRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _edit_json()


@app.post("/api/edit/key")
async def edit_key(req: KeyRequest):
    consumed = editor.handle_key(req.key)
    return {"consumed": consumed, **_edit_json()}


@app.post("/api/edit/cancel")
async def cancel_edit():
    editor.cancel()
    return _edit_json()


@app.post("/api/edit/save")
async def save_edit():
    state = editor.state
    try:
        status = editor.save()
    except EditRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"status": status, "thread": _thread_json(state.thread_key)}


@app.get("/api/chatbot/system-prompt")
async def get_system_prompt():
    return {
        "systemPrompt": await prompts.default_prompt(),
        "override": await prompts.override(),
    }


@app.put("/api/chatbot/system-prompt")
async def put_system_prompt(req: SystemPromptRequest):
    status = await prompts.save_override(req.system_prompt)
    return {"status": status.value, "override": await prompts.override()}
