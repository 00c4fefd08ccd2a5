import logging

from fastapi import Request

from afritok.core.api_response import get_request_id
from afritok.core.phone import mask_phone


def log_business_event(
    logger: logging.Logger,
    request: Request,
    *,
    event: str,
    phone: str | None = None,
    **fields,
) -> None:
    """Log an auth outcome as ``key=value`` pairs. The phone is always masked."""
    request_id = get_request_id(request)
    chunks = [f"event={event}", f"request_id={request_id}"]
    if phone is not None:
        chunks.append(f"phone={mask_phone(phone)}")
    for key, value in fields.items():
        chunks.append(f"{key}={value}")
    logger.info("business_event %s", " ".join(chunks))
