"""Note management routes for the NoteChat API."""

from fastapi import APIRouter, Depends
from typing import List

from . import schemas
from .auth import get_current_user_id
from .notes_service import NotesService, get_notes_service

router = APIRouter(prefix="/api/notes", tags=["notes"])


@router.get("/fetchallnotes", response_model=List[schemas.NoteOut])
def fetch_all_notes(
    owner_id: str = Depends(get_current_user_id),
    notes: NotesService = Depends(get_notes_service),
):
    """
    Retrieve every note belonging to the current user, oldest first.

    Args:
        owner_id (str): Authenticated user.
        notes (NotesService): Notes service.

    Returns:
        list[NoteOut]: Notes of the user.
    """
    return notes.list_notes(owner_id)


@router.post("/addnote", response_model=schemas.NoteOut)
def add_note(
    note_in: schemas.NoteCreate,
    owner_id: str = Depends(get_current_user_id),
    notes: NotesService = Depends(get_notes_service),
):
    """
    Create a new note owned by the current user.

    Args:
        note_in (NoteCreate): Title, description and optional tag.
        owner_id (str): Authenticated user.
        notes (NotesService): Notes service.

    Returns:
        NoteOut: Created note.
    """
    return notes.add_note(owner_id, note_in.title, note_in.description, note_in.tag)


@router.put("/updatenote/{note_id}", response_model=schemas.NoteOut)
def update_note(
    note_id: str,
    changes: schemas.NoteUpdate,
    owner_id: str = Depends(get_current_user_id),
    notes: NotesService = Depends(get_notes_service),
):
    """
    Partially update an existing note.

    Only fields provided in the request will be updated.

    Raises:
        NotFoundError: If the note is not found.
        ForbiddenError: If the note belongs to another user.

    Returns:
        NoteOut: Updated note.
    """
    return notes.update_note(owner_id, note_id, changes.model_dump(exclude_unset=True))


@router.delete("/deletenote/{note_id}", response_model=schemas.NoteDeleted)
def delete_note(
    note_id: str,
    owner_id: str = Depends(get_current_user_id),
    notes: NotesService = Depends(get_notes_service),
):
    """
    Delete a note owned by the current user.

    Raises:
        NotFoundError: If the note is not found.
        ForbiddenError: If the note belongs to another user.

    Returns:
        NoteDeleted: Deletion status and the deleted note.
    """
    return schemas.NoteDeleted(note=notes.delete_note(owner_id, note_id))


@router.delete("/clearallnotes", response_model=schemas.DeletedCount)
def clear_all_notes(
    owner_id: str = Depends(get_current_user_id),
    notes: NotesService = Depends(get_notes_service),
):
    """Delete every note of the current user."""
    return schemas.DeletedCount(deletedCount=notes.clear_all_notes(owner_id))
