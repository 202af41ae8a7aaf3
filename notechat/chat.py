"""Direct messaging routes for the NoteChat API."""

from fastapi import APIRouter, Depends

from . import schemas
from .auth import get_current_user
from .messaging_service import MessagingService, get_messaging_service

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.get("/chats", response_model=schemas.ContactList)
def list_contacts(
    current_user: dict = Depends(get_current_user),
    chat: MessagingService = Depends(get_messaging_service),
):
    """
    Retrieve the users the current user has exchanged messages with.

    Returns:
        ContactList: Contacts as ``{id, email, uname}``.
    """
    return schemas.ContactList(contacts=chat.list_contacts(current_user["id"]))


@router.get("/messages/{email}", response_model=schemas.MessageList)
def list_messages(
    email: str,
    current_user: dict = Depends(get_current_user),
    chat: MessagingService = Depends(get_messaging_service),
):
    """
    Retrieve the conversation with another user, oldest message first.

    Args:
        email (str): Email of the other participant.

    Raises:
        NotFoundError: If no user has that email.
    """
    return schemas.MessageList(messages=chat.list_messages(current_user["id"], email))


@router.post("/messages", response_model=schemas.MessageEnvelope)
def send_message(
    message_in: schemas.MessageCreate,
    current_user: dict = Depends(get_current_user),
    chat: MessagingService = Depends(get_messaging_service),
):
    """
    Send a message and push it to both participants' live channels.

    Raises:
        NotFoundError: If the receiver does not exist.
    """
    message = chat.send_message(current_user, message_in.receiver_email, message_in.content)
    return schemas.MessageEnvelope(message=message)


@router.delete("/messages/{email}", response_model=schemas.DeletedCount)
def delete_conversation(
    email: str,
    current_user: dict = Depends(get_current_user),
    chat: MessagingService = Depends(get_messaging_service),
):
    """Delete the whole conversation with another user."""
    return schemas.DeletedCount(
        deletedCount=chat.delete_conversation(current_user["id"], email)
    )


@router.patch("/messages/read/{email}", response_model=schemas.UpdatedCount)
def mark_read(
    email: str,
    current_user: dict = Depends(get_current_user),
    chat: MessagingService = Depends(get_messaging_service),
):
    """
    Mark every unread message from ``email`` to the current user as read.

    Raises:
        NotFoundError: If the sender does not exist.
    """
    return schemas.UpdatedCount(updatedCount=chat.mark_read(current_user, email))
