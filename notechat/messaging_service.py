"""Direct messages between two users.

Writes that other participants should see right away are pushed through the
:class:`~notechat.realtime.ConnectionManager` handed in at construction. The
push is scheduled as a background task, so it runs only after the store
write succeeded and after the response went out, and a failed push never
turns into an API error.
"""

import logging
from datetime import datetime, timezone

from fastapi import BackgroundTasks, Depends

from . import crud
from .realtime import ConnectionManager, get_connection_manager
from .store import Store, get_store

logger = logging.getLogger(__name__)


def conversation(user_id: str, other_id: str) -> tuple[dict, dict]:
    """Criteria matching every message exchanged between two users."""
    return (
        {"sender_id": user_id, "receiver_id": other_id},
        {"sender_id": other_id, "receiver_id": user_id},
    )


class MessagingService:
    def __init__(
        self, store: Store, notifier: ConnectionManager, tasks: BackgroundTasks
    ):
        self.store = store
        self.notifier = notifier
        self.tasks = tasks

    def list_contacts(self, user_id: str) -> list[dict]:
        """
        Users who exchanged at least one message with ``user_id``.

        Returns:
            list[dict]: ``{id, email, uname}`` summaries sorted by uname; empty
            when the user has no messages.
        """
        columns = ["sender_id", "receiver_id"]
        sent = self.store.messages.select({"sender_id": user_id}, columns=columns)
        received = self.store.messages.select({"receiver_id": user_id}, columns=columns)
        contact_ids = set()
        for message in sent + received:
            contact_ids.update((message["sender_id"], message["receiver_id"]))
        contact_ids.discard(user_id)
        summaries = crud.get_user_summaries(self.store, contact_ids)
        return sorted(summaries.values(), key=lambda user: user["uname"])

    def list_messages(self, user_id: str, other_email: str) -> list[dict]:
        """
        The conversation with ``other_email``, oldest first, each message
        annotated with ``sender`` and ``receiver`` summaries.

        Raises:
            NotFoundError: If no user has ``other_email``.
        """
        other = crud.require_user_by_email(self.store, other_email)
        messages = self.store.messages.select(
            *conversation(user_id, other["id"]), order_by="created_at"
        )
        users = crud.get_user_summaries(
            self.store,
            {m["sender_id"] for m in messages} | {m["receiver_id"] for m in messages},
        )
        return [
            {
                **message,
                "sender": users.get(message["sender_id"]),
                "receiver": users.get(message["receiver_id"]),
            }
            for message in messages
        ]

    def send_message(self, sender: dict, receiver_email: str, content: str) -> dict:
        """
        Store a message and push ``message:new`` to both participants.

        Raises:
            NotFoundError: If no user has ``receiver_email``.
        """
        receiver = crud.require_user_by_email(
            self.store, receiver_email, "Receiver not found"
        )
        message = self.store.messages.insert(
            {"sender_id": sender["id"], "receiver_id": receiver["id"], "content": content}
        )
        self.tasks.add_task(
            self.notifier.publish_new_message,
            message,
            sender_email=sender["email"],
            receiver_email=receiver["email"],
        )
        return message

    def delete_conversation(self, user_id: str, other_email: str) -> int:
        """
        Delete every message between the two users in both directions.

        Returns:
            int: Row count reported by the store.
        """
        other = crud.require_user_by_email(self.store, other_email)
        count = self.store.messages.delete(*conversation(user_id, other["id"]))
        logger.info("Deleted %d messages between %s and %s", count, user_id, other["id"])
        return count

    def mark_read(self, reader: dict, sender_email: str) -> int:
        """
        Stamp every unread message from ``sender_email`` to ``reader``.

        Messages already read keep their timestamp, so repeating the call
        updates nothing. When rows changed, the sender gets ``message:read``.

        Raises:
            NotFoundError: If no user has ``sender_email``.

        Returns:
            int: Number of messages that became read.
        """
        sender = crud.require_user_by_email(self.store, sender_email, "Sender not found")
        updated = self.store.messages.update(
            {"read_at": datetime.now(timezone.utc)},
            {"sender_id": sender["id"], "receiver_id": reader["id"], "read_at": None},
        )
        if updated:
            self.tasks.add_task(
                self.notifier.publish_read,
                sender["email"],
                [message["id"] for message in updated],
                reader_email=reader["email"],
            )
        return len(updated)


def get_messaging_service(
    tasks: BackgroundTasks,
    store: Store = Depends(get_store),
    notifier: ConnectionManager = Depends(get_connection_manager),
) -> MessagingService:
    return MessagingService(store, notifier, tasks)
