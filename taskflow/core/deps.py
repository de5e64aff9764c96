# taskflow/core/deps.py
from functools import lru_cache
from taskflow.config import settings
from taskflow.database import AsyncSessionLocal
from taskflow.services.notes import NoteService
from taskflow.services.workflow import WorkflowEngine


@lru_cache
def get_workflow_engine() -> WorkflowEngine:
    # one engine per process so per-task timer locks are shared between requests
    return WorkflowEngine(
        AsyncSessionLocal,
        timeout=settings.DB_TIMEOUT_SECONDS,
        warning_ratio=settings.TIMER_WARNING_RATIO,
    )


@lru_cache
def get_note_service() -> NoteService:
    return NoteService(AsyncSessionLocal, timeout=settings.DB_TIMEOUT_SECONDS)
