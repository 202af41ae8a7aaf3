"""User account routes for the NoteChat API."""

from fastapi import APIRouter, Depends

from . import schemas, crud
from .auth import get_current_user, get_current_user_id
from .store import Store, get_store

router = APIRouter(prefix="/api/auth", tags=["users"])


@router.post("/getuser", response_model=schemas.UserOut)
def read_me(current_user: dict = Depends(get_current_user)):
    """
    Retrieve details of the currently authenticated user.

    Args:
        current_user (dict): Authenticated user obtained from the token.

    Returns:
        UserOut: User profile information, without the password hash.
    """
    return current_user


@router.delete("/deleteuser/{user_id}", response_model=schemas.StatusResponse)
def delete_account(
    user_id: str,
    actor_id: str = Depends(get_current_user_id),
    store: Store = Depends(get_store),
):
    """
    Delete the authenticated user's own account.

    Args:
        user_id (str): Account to delete; must be the caller's.
        actor_id (str): Verified identity of the caller.
        store (Store): Data access façade.

    Raises:
        NotFoundError: If the account does not exist.
        ForbiddenError: If the account belongs to someone else.

    Returns:
        StatusResponse: Deletion status.
    """
    crud.delete_user(store, actor_id, user_id)
    return schemas.StatusResponse(message="User has been deleted")


@router.get("/getallusers", response_model=schemas.UserList)
def list_users(
    _: str = Depends(get_current_user_id), store: Store = Depends(get_store)
):
    """List every user that can be messaged."""
    return schemas.UserList(users=crud.list_users(store))
