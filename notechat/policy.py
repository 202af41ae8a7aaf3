"""Ownership-based authorization policy."""

from enum import Enum
from typing import Any, Mapping

from .errors import ForbiddenError


class Capability(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


#: Column naming the owner of each kind of resource
OWNER_FIELDS = {
    "notes": "user_id",
    "users": "id",
}


def authorize(
    actor_id: str, kind: str, resource: Mapping[str, Any], capability: Capability
) -> None:
    """
    Allow ``actor_id`` to exercise ``capability`` on ``resource`` or raise.

    Every capability on notes and user accounts is reserved to the owner.

    Args:
        actor_id (str): Verified identity of the caller.
        kind (str): Table the resource comes from.
        resource (Mapping): Row as returned by the store.
        capability (Capability): What the caller is about to do.

    Raises:
        ForbiddenError: If the caller does not own the resource.
    """
    owner = resource.get(OWNER_FIELDS[kind])
    if owner is None or str(owner) != str(actor_id):
        raise ForbiddenError(f"Not authorized to {capability.value} this resource")
