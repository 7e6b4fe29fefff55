# sealsend/api/routes/users.py
from __future__ import annotations

from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Header, status

from sealsend.core.security import get_transfer_service
from sealsend.schemas.user import UserIn, UserOut
from sealsend.services.transfer import TransferService

router = APIRouter(prefix="/users", tags=["users"])


def require_registration_token(
    x_registration_token: Optional[str] = Header(default=None),
    transfer: TransferService = Depends(get_transfer_service),
) -> Optional[str]:
    # runs before the body is parsed, so a closed server never looks at it
    transfer.check_registration_token(x_registration_token)
    return x_registration_token


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserOut)
def register(
    payload: UserIn,
    registration_token: Optional[str] = Depends(require_registration_token),
    transfer: TransferService = Depends(get_transfer_service),
):
    return transfer.register(
        payload.username,
        payload.identity_public_key,
        payload.exchange_public_key,
        registration_token=registration_token,
    )


@router.get("", response_model=Union[UserOut, List[UserOut]])
def get_users(
    username: Optional[str] = None,
    transfer: TransferService = Depends(get_transfer_service),
):
    """Public key lookup for one user, or every registered user when no name is given."""
    if username:
        return UserOut.model_validate(transfer.get_user(username))
    return [UserOut.model_validate(u) for u in transfer.list_users()]
