# taskflow/services/notes.py
import logging
from typing import List, Optional

from taskflow.core.actor import Actor
from taskflow.core.clock import Clock, utcnow
from taskflow.core.errors import Forbidden, NotFound, ValidationError
from taskflow.core.roles import NoteKind, Role
from taskflow.schemas.note import note_columns
from taskflow.services.repository import TaskRepository

logger = logging.getLogger(__name__)

# verdicts and feedback images belong to the reviewer
QA_ONLY_KINDS = frozenset({NoteKind.APPROVAL.value, NoteKind.REJECTION.value, NoteKind.FEEDBACK_IMAGE.value})


class NoteService:
    def __init__(self, session_factory, clock: Clock = utcnow, timeout: float = 5.0):
        self._session_factory = session_factory
        self._clock = clock
        self._timeout = timeout

    def _repo(self, session) -> TaskRepository:
        return TaskRepository(session, timeout=self._timeout)

    async def add_note(self, task_id: int, actor: Actor, body):
        if body.kind in QA_ONLY_KINDS and actor.role != Role.QA:
            raise Forbidden("Only QA can add review notes")
        async with self._session_factory() as session:
            repo = self._repo(session)
            if await repo.get_task(task_id) is None:
                raise NotFound(f"Task {task_id} not found")
            note = await repo.add_note(task_id, actor.id, created_at=self._clock(), **note_columns(body))
            await repo.commit()
        logger.info("Note %s (%s) added to task %s by %s", note.id, body.kind, task_id, actor.id)
        return note

    async def list_notes(self, task_id: int) -> List:
        async with self._session_factory() as session:
            return await self._repo(session).list_notes(task_id)

    async def edit_feedback(
        self,
        note_id: int,
        actor: Actor,
        note: Optional[str] = None,
        caption: Optional[str] = None,
        image_ref: Optional[str] = None,
    ):
        """QA reviewers may touch up their own feedback images, nothing else."""
        if actor.role != Role.QA:
            raise Forbidden("Only QA can edit feedback")
        async with self._session_factory() as session:
            repo = self._repo(session)
            existing = await repo.get_note(note_id)
            if existing is None:
                raise NotFound(f"Note {note_id} not found")
            if existing.user_id != actor.id:
                raise Forbidden("You can only edit your own feedback")
            if existing.kind != NoteKind.FEEDBACK_IMAGE.value:
                raise ValidationError("Can only edit feedback images", field="kind")

            if note is not None:
                if not note.strip():
                    raise ValidationError("note must not be empty", field="note")
                existing.note = note
            if caption is not None:
                existing.caption = caption
            if image_ref is not None:
                if not image_ref.strip():
                    raise ValidationError("image_ref must not be empty", field="image_ref")
                existing.image_ref = image_ref
            await repo.commit()
        return existing
