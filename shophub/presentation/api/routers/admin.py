from fastapi import APIRouter, Depends

from ....application.services.account_service import AccountService
from ....core.dependencies import get_account_service
from ....domain.errors import AccountError, ErrorKind
from ....domain.models import User
from ...api.dependencies import require_admin_user
from ...api.schemas.auth import UserDetail, UserResponse

router = APIRouter(prefix="/api/admin", tags=["Administration"])


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    _: User = Depends(require_admin_user),
    account_service: AccountService = Depends(get_account_service),
) -> UserResponse:
    return UserResponse(user=UserDetail.from_user(account_service.get_user(user_id)))


@router.post("/users/{user_id}/deactivate", response_model=UserResponse)
def deactivate_user(
    user_id: int,
    admin: User = Depends(require_admin_user),
    account_service: AccountService = Depends(get_account_service),
) -> UserResponse:
    if user_id == admin.id:
        raise AccountError(ErrorKind.FORBIDDEN, "Administrators cannot deactivate their own account")
    return UserResponse(user=UserDetail.from_user(account_service.set_active(user_id, False)))


@router.post("/users/{user_id}/activate", response_model=UserResponse)
def activate_user(
    user_id: int,
    _: User = Depends(require_admin_user),
    account_service: AccountService = Depends(get_account_service),
) -> UserResponse:
    return UserResponse(user=UserDetail.from_user(account_service.set_active(user_id, True)))
