import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from afritok.core.api_response import success_response_payload
from afritok.core.config import get_settings
from afritok.core.errors import AppError, ServiceUnavailable
from afritok.core.metrics import increment_counter
from afritok.core.observability import log_business_event
from afritok.core.rate_limit import check_rate_limit, record_attempt
from afritok.core.security import (
    clear_session_cookie,
    create_session_token,
    get_current_user,
    set_session_cookie,
)
from afritok.core.utils import client_ip, utc_now_naive
from afritok.db.models.login_history import LoginHistory
from afritok.db.models.user import User
from afritok.db.session import get_db
from afritok.otp.dependencies import get_otp_service, get_sms_sender
from afritok.otp.service import OtpService, validate_phone
from afritok.otp.sms import SmsSender, build_otp_message, deliver_otp_code
from afritok.schemas.auth import RequestOtpIn, VerifyOtpIn
from afritok.schemas.user import UserOut
from afritok.services.users import find_or_create_user_by_phone

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _write_login_history(
    db: Session,
    request: Request,
    *,
    phone: str,
    result: str,
    source: str,
    user: User | None = None,
) -> None:
    db.add(
        LoginHistory(
            user_id=user.id if user else None,
            phone=phone,
            ip=client_ip(request),
            user_agent=request.headers.get("user-agent", "")[:255] or None,
            result=result,
            source=source,
            created_at=utc_now_naive(),
        )
    )
    db.commit()


def _user_payload(user: User) -> dict:
    return UserOut.model_validate(user).model_dump()


@router.post("/request-otp")
def request_otp(
    payload: RequestOtpIn,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    otp: OtpService = Depends(get_otp_service),
    sms: SmsSender = Depends(get_sms_sender),
):
    increment_counter("otp_request_total")
    settings = get_settings()
    phone = validate_phone(payload.phone)
    try:
        check_rate_limit(
            db,
            phone,
            "request_otp",
            limit=settings.otp_request_limit,
            window_minutes=settings.otp_request_window_minutes,
        )
        record_attempt(db, phone, "request_otp")
        issued = otp.request_challenge(phone)
        _write_login_history(db, request, phone=phone, result="code_issued", source="request_otp")
    except SQLAlchemyError as exc:
        logger.exception("OTP request failed on storage")
        raise ServiceUnavailable() from exc

    background_tasks.add_task(
        deliver_otp_code,
        sms,
        issued.phone,
        build_otp_message(issued.code, settings.otp_ttl_minutes),
    )
    log_business_event(logger, request, event="otp.request", phone=phone, result="code_issued")

    response = success_response_payload(request)
    if settings.show_dev_code:
        response["dev_code"] = issued.code
    return response


@router.post("/verify-otp")
def verify_otp(
    payload: VerifyOtpIn,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    otp: OtpService = Depends(get_otp_service),
):
    settings = get_settings()
    phone = validate_phone(payload.phone)
    try:
        check_rate_limit(
            db,
            phone,
            "verify_otp",
            limit=settings.otp_verify_limit,
            window_minutes=settings.otp_verify_window_minutes,
        )
        record_attempt(db, phone, "verify_otp")
        try:
            otp.verify(phone, payload.code)
        except AppError as exc:
            increment_counter("otp_verify_result_total", result=exc.code)
            _write_login_history(db, request, phone=phone, result=exc.code, source="verify_otp")
            log_business_event(logger, request, event="otp.verify", phone=phone, result=exc.code)
            raise
        user = find_or_create_user_by_phone(db, phone)
        _write_login_history(db, request, phone=phone, result="success", source="verify_otp", user=user)
    except SQLAlchemyError as exc:
        logger.exception("OTP verification failed on storage")
        raise ServiceUnavailable() from exc

    token = create_session_token(user.id, user.phone)
    set_session_cookie(response, request, token)
    increment_counter("otp_verify_result_total", result="success")
    log_business_event(logger, request, event="otp.verify", phone=phone, result="success", user_id=user.id)
    return success_response_payload(request, user=_user_payload(user))


@router.get("/me")
def me(request: Request, current_user: User = Depends(get_current_user)):
    return success_response_payload(request, user=_user_payload(current_user))


@router.post("/logout")
def logout(request: Request, response: Response):
    clear_session_cookie(response)
    log_business_event(logger, request, event="auth.logout")
    return success_response_payload(request)
