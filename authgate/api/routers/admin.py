"""Admin router — user listing and removal, guarded by ``X-Admin-Key``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from authgate.api.dependencies import AccountsDep, AuthorityDep, require_admin_key
from authgate.schemas.user import UserList, UserOut

router = APIRouter(
    prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_key)]
)


@router.get("/users", response_model=UserList)
async def list_users(authority: AuthorityDep) -> UserList:
    users = await authority.store.list_users()
    return UserList(total=len(users), items=[UserOut.from_user(u) for u in users])


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, accounts: AccountsDep) -> None:
    """Delete a user, their provider links and stored provider tokens."""
    await accounts.delete_user(user_id)
