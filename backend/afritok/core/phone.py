import re

E164_RE = re.compile(r"\+[1-9][0-9]{7,14}")
_SEPARATORS_RE = re.compile(r"[\s\-().]")


def normalize_phone(phone: str) -> str:
    """Strip common separators and turn an international ``00`` prefix into ``+``.

    The result is not guaranteed to be valid; pair with :func:`is_valid_phone`.
    """
    raw = _SEPARATORS_RE.sub("", (phone or "").strip())
    if raw.startswith("00"):
        raw = "+" + raw[2:]
    return raw


def is_valid_phone(phone: str) -> bool:
    return bool(E164_RE.fullmatch(phone))


def mask_phone(phone: str, visible_digits: int = 4) -> str:
    if not phone:
        return ""
    if len(phone) <= visible_digits:
        return phone
    return "*" * (len(phone) - visible_digits) + phone[-visible_digits:]
