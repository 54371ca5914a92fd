"""Shared validation utilities"""

import re
from typing import Optional

_SEPARATORS = re.compile(r"[\s\-/().]")
# German mobile networks: 015x, 016x, 017x followed by 7 or 8 subscriber digits
_MOBILE = re.compile(r"^(?:\+49|0049|0)(1[5-7]\d)(\d{7,8})$")


def validate_mobile_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate a German mobile number and normalize it to E.164 (+49...).

    Raises:
        ValueError: If the number is not a mobile number
    """
    if phone is None:
        return None

    phone = phone.strip()
    if not phone:
        return None

    match = _MOBILE.match(_SEPARATORS.sub("", phone))
    if match is None:
        raise ValueError("Please enter a valid mobile phone number")

    return f"+49{match.group(1)}{match.group(2)}"


def validate_person_name(name: str) -> str:
    name = " ".join(name.split())
    if len(name) < 2:
        raise ValueError("Name must be at least 2 characters")
    return name


def validate_local_time(value):
    """
    Reject times and datetimes that carry a UTC offset.

    All schedule arithmetic uses naive local time, so an offset such as
    ``10:00+02:00`` cannot be compared with working hours or "now".

    Raises:
        ValueError: If the value has tzinfo set
    """
    if value is not None and value.tzinfo is not None:
        raise ValueError("Times must be local, without a UTC offset")
    return value
