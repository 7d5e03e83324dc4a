from __future__ import annotations

from datetime import date, datetime, time, timedelta


def parse_hhmm(value: str) -> time:
    value = value.strip()
    parts: list[str]
    if ":" in value:
        parts = value.split(":", 1)
    elif "." in value:
        parts = value.split(".", 1)
    else:
        raise ValueError(f"Unsupported time format: {value}")
    hour = int(parts[0])
    minute = int(parts[1])
    if not (0 <= hour < 24 and 0 <= minute < 60):  # pragma: no cover - guard rail
        raise ValueError(f"Invalid time value: {value}")
    return time(hour=hour, minute=minute)


def parse_minutes(value: str | int) -> int:
    """Read a whole-minute quantity from config values like ``15``, ``"15m"`` or ``"0:15"``."""
    if isinstance(value, bool):
        raise ValueError(f"Unsupported minutes value: {value}")
    if isinstance(value, int):
        return value
    cleaned = value.strip().lower()
    if cleaned.endswith("m"):
        return int(float(cleaned[:-1]))
    if cleaned.endswith("h"):
        return int(float(cleaned[:-1]) * 60)
    if ":" in cleaned:
        hours, minutes = cleaned.split(":", 1)
        return int(hours) * 60 + int(minutes)
    if cleaned.lstrip("-").isdigit():
        return int(cleaned)
    raise ValueError(f"Unsupported minutes value: {value}")


def format_hhmm(value: time | datetime) -> str:
    return value.strftime("%H:%M")


def format_minutes(value: int) -> str:
    hours, minutes = divmod(value, 60)
    return f"{hours:02d}:{minutes:02d}"


def minutes_after_midnight(day: date, value: int) -> datetime:
    return datetime.combine(day, time(0, 0)) + timedelta(minutes=value)


def project_after(moment: datetime, reference: datetime) -> datetime:
    """Move ``moment`` onto the following day when it reads earlier than ``reference``.

    Prayer times are supplied as same-day civil times, so the dawn that closes a
    night shows up numerically before the sunset that opens it.
    """
    if moment < reference:
        return moment + timedelta(days=1)
    return moment
