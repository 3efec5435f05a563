from datetime import datetime
from typing import Optional


def format_duration(seconds: float) -> str:
    if seconds < 0:
        return "0:00:00"
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_duration_short(seconds: float) -> str:
    if seconds < 0:
        return "0m"
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes = rest // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_currency(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_time(value: Optional[datetime]) -> str:
    if not isinstance(value, datetime):
        return "--:--"
    return value.strftime("%H:%M")


def format_date(value: Optional[datetime]) -> str:
    if not isinstance(value, datetime):
        return "--"
    return value.strftime("%b %d, %Y")


def format_datetime(value: Optional[datetime]) -> str:
    if not isinstance(value, datetime):
        return "--"
    return value.strftime("%b %d, %Y %H:%M")


def format_percentage(value: float) -> str:
    return f"{value:.1f}%"
