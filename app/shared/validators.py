"""Shared validation utilities"""

import re
from datetime import datetime
from typing import Optional

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def validate_time_string(value: Optional[str]) -> Optional[str]:
    """
    Validate a wall-clock time in 24h HH:MM format.

    Raises:
        ValueError: If the time is malformed or out of range
    """
    if value is None:
        return value

    value = value.strip()
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format (00:00-23:59)")
    return value


def validate_date_string(value: Optional[str]) -> Optional[str]:
    """
    Validate a calendar date in YYYY-MM-DD format.

    Raises:
        ValueError: If the date does not parse
    """
    if value is None:
        return value

    value = value.strip()
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValueError("Date must be in YYYY-MM-DD format")
    return value


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """Normalize a phone number to digits with an optional leading +"""
    if not phone:
        return phone

    phone = phone.strip()
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 7 or len(digits) > 15:
        raise ValueError("Phone number must have between 7 and 15 digits")

    return f"+{digits}" if phone.startswith("+") else digits


def validate_days_of_week(days: Optional[list[int]]) -> Optional[list[int]]:
    """Days are 0-6 with 0 = Sunday; duplicates are dropped"""
    if days is None:
        return days

    for day in days:
        if day < 0 or day > 6:
            raise ValueError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
    return sorted(set(days))


def validate_service_ids(service_ids: list[int]) -> list[int]:
    if not service_ids:
        raise ValueError("At least one service is required")
    # Keep first occurrence order, drop repeats
    return list(dict.fromkeys(service_ids))
