"""Per-user note records."""

from fastapi import Depends

from .errors import NotFoundError
from .policy import Capability, authorize
from .store import Store, get_store

EDITABLE_FIELDS = ("title", "description", "tag")


class NotesService:
    """CRUD over notes, restricted to their owner."""

    def __init__(self, store: Store):
        self.store = store

    def list_notes(self, owner_id: str) -> list[dict]:
        return self.store.notes.select({"user_id": owner_id}, order_by="created_at")

    def add_note(
        self, owner_id: str, title: str, description: str, tag: str | None = None
    ) -> dict:
        return self.store.notes.insert(
            {"user_id": owner_id, "title": title, "description": description, "tag": tag}
        )

    def _owned(self, owner_id: str, note_id: str, capability: Capability) -> dict:
        note = self.store.notes.select_one({"id": note_id})
        if note is None:
            raise NotFoundError("Note not found")
        authorize(owner_id, "notes", note, capability)
        return note

    def update_note(self, owner_id: str, note_id: str, fields: dict) -> dict:
        """
        Merge ``fields`` into a note. Fields that are absent or ``None`` keep
        their current value.

        Raises:
            NotFoundError: If the note does not exist.
            ForbiddenError: If the note belongs to someone else.
        """
        note = self._owned(owner_id, note_id, Capability.WRITE)
        changes = {
            key: value
            for key, value in fields.items()
            if key in EDITABLE_FIELDS and value is not None
        }
        if not changes:
            return note
        rows = self.store.notes.update(changes, {"id": note_id, "user_id": owner_id})
        if not rows:
            raise NotFoundError("Note not found")
        return rows[0]

    def delete_note(self, owner_id: str, note_id: str) -> dict:
        """Delete a note and return it as it was."""
        note = self._owned(owner_id, note_id, Capability.DELETE)
        if not self.store.notes.delete({"id": note_id, "user_id": owner_id}):
            raise NotFoundError("Note not found")
        return note

    def clear_all_notes(self, owner_id: str) -> int:
        return self.store.notes.delete({"user_id": owner_id})


def get_notes_service(store: Store = Depends(get_store)) -> NotesService:
    return NotesService(store)
