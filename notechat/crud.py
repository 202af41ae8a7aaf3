"""User account operations.

This module contains the store interaction logic for user records,
isolated from FastAPI route handlers.
"""

from typing import Iterable

from .errors import DuplicateError, NotFoundError
from .policy import Capability, authorize
from .store import Store

#: Public columns of a user; the password hash never leaves this module
PUBLIC_COLUMNS = ("id", "name", "uname", "email", "created_at")
SUMMARY_COLUMNS = ("id", "email", "uname")


def create_user(
    store: Store, name: str, uname: str, email: str, hashed_password: str | None
) -> dict:
    """
    Create and persist a new user.

    Args:
        store (Store): Data access façade.
        name (str): Full name.
        uname (str): Unique display name.
        email (str): Unique email address.
        hashed_password (str | None): bcrypt hash of the password.

    Raises:
        DuplicateError: If the email or the display name is already taken.

    Returns:
        dict: Newly created user.
    """
    if store.users.select_one({"email": email}, columns=["id"]):
        raise DuplicateError("Email already exists")
    if store.users.select_one({"uname": uname}, columns=["id"]):
        raise DuplicateError("Username already taken")
    try:
        return store.users.insert(
            {"name": name, "uname": uname, "email": email, "password": hashed_password}
        )
    except DuplicateError:
        raise DuplicateError("Email already exists")


def get_user_by_email(store: Store, email: str) -> dict | None:
    """
    Retrieve a user by email address, password hash included.

    Args:
        store (Store): Data access façade.
        email (str): User email.

    Returns:
        dict | None: User if found, otherwise ``None``.
    """
    return store.users.select_one({"email": email})


def get_user_by_id(store: Store, user_id: str) -> dict | None:
    """Retrieve the public fields of a user by primary key."""
    return store.users.select_one({"id": user_id}, columns=PUBLIC_COLUMNS)


def require_user_by_email(store: Store, email: str, detail: str = "User not found") -> dict:
    """
    Resolve an email to a user summary.

    Raises:
        NotFoundError: If no user has that email.
    """
    user = store.users.select_one({"email": email}, columns=SUMMARY_COLUMNS)
    if user is None:
        raise NotFoundError(detail)
    return user


def get_user_summaries(store: Store, user_ids: Iterable[str]) -> dict[str, dict]:
    """Map each of ``user_ids`` to its ``{id, email, uname}`` summary."""
    ids = set(user_ids)
    if not ids:
        return {}
    rows = store.users.select({"id": ids}, columns=SUMMARY_COLUMNS)
    return {row["id"]: row for row in rows}


def list_users(store: Store) -> list[dict]:
    return store.users.select(columns=SUMMARY_COLUMNS, order_by="uname")


def delete_user(store: Store, actor_id: str, user_id: str) -> dict:
    """
    Delete a user account together with its notes and messages.

    Only the owner of the account may delete it.

    Raises:
        NotFoundError: If the user does not exist.
        ForbiddenError: If ``actor_id`` is not the account owner.

    Returns:
        dict: Public fields of the deleted user.
    """
    user = get_user_by_id(store, user_id)
    if user is None:
        raise NotFoundError("User not found")
    authorize(actor_id, "users", user, Capability.DELETE)
    store.notes.delete({"user_id": user_id})
    store.messages.delete({"sender_id": user_id}, {"receiver_id": user_id})
    store.users.delete({"id": user_id})
    return user
