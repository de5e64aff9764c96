from fastapi import APIRouter, Depends, status
from taskflow.core.auth import get_current_actor
from taskflow.core.deps import get_note_service
from taskflow.schemas.note import NoteCreate, FeedbackUpdate, NoteResponse, NoteListResponse, note_body

router = APIRouter(prefix="/notes", tags=["notes"])

def to_response(row) -> NoteResponse:
    return NoteResponse(
        id=row.id,
        task_id=row.task_id,
        user_id=row.user_id,
        created_at=row.created_at,
        body=note_body(row)
    )

@router.post("", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def add_note(
    note_in: NoteCreate,
    notes = Depends(get_note_service),
    actor = Depends(get_current_actor)
):
    row = await notes.add_note(note_in.task_id, actor, note_in.body)
    return to_response(row)


@router.get("", response_model=NoteListResponse)
async def list_notes(
    task_id: int,
    notes = Depends(get_note_service),
    actor = Depends(get_current_actor)
):
    rows = await notes.list_notes(task_id)
    return NoteListResponse(notes=[to_response(r) for r in rows])


@router.put("/{note_id}", response_model=NoteResponse)
async def edit_feedback(
    note_id: int,
    update_in: FeedbackUpdate,
    notes = Depends(get_note_service),
    actor = Depends(get_current_actor)
):
    row = await notes.edit_feedback(note_id, actor, note=update_in.note, caption=update_in.caption, image_ref=update_in.image_ref)
    return to_response(row)
