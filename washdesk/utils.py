import math
import re
from datetime import datetime
from typing import Any


def is_valid_email(s: str) -> bool:
    if not s: return False
    return re.match(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$", s) is not None


def format_amount(value: Any) -> str:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "0.00"
    return f"{number:,.2f}"


def format_datetime(value: Any) -> str:
    if not value:
        return "-"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    try:
        return datetime.fromisoformat(str(value)).strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return str(value)


def parse_price(value: Any) -> float:
    """Form price to number; blanks and garbage become 0."""
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(number) if number.is_integer() else number
