import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from afritok.core.api_response import success_response_payload
from afritok.core.observability import log_business_event
from afritok.core.security import clear_session_cookie, get_current_user
from afritok.db.models.user import User
from afritok.db.session import get_db
from afritok.schemas.user import UserOut, UserProfileOut, UserUpdate
from afritok.services.users import soft_delete_user, update_user_profile

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.get("/{user_id}")
def get_profile(user_id: int, request: Request, db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if not user or user.is_deleted:
        raise HTTPException(status_code=404, detail="User not found")
    return success_response_payload(request, user=UserProfileOut.model_validate(user).model_dump())


@router.patch("/me")
def update_profile(
    payload: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    user = update_user_profile(db, current_user, changes)
    log_business_event(logger, request, event="user.update_profile", user_id=user.id, fields=",".join(sorted(changes)))
    return success_response_payload(
        request,
        user={**UserOut.model_validate(user).model_dump(), **UserProfileOut.model_validate(user).model_dump()},
    )


@router.delete("/me")
def delete_account(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    soft_delete_user(db, current_user)
    clear_session_cookie(response)
    log_business_event(logger, request, event="user.delete", user_id=current_user.id)
    return success_response_payload(request)
