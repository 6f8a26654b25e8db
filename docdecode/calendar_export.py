"""
Calendar Export for DocDecode
Premium reminders as Google Calendar "create event" links; nothing is sent
or read back.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from urllib.parse import urlencode

from docdecode.schema import Reminder

CALENDAR_URL = "https://calendar.google.com/calendar/render"
EVENT_DURATION = timedelta(hours=1)
FALLBACK_START = time(9, 0)


def _fmt_datetime(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
        return value.strftime("%Y%m%dT%H%M%SZ")
    # Naive times are left floating so the calendar uses the viewer's zone.
    return value.strftime("%Y%m%dT%H%M%S")


def event_window(when: str, now: Optional[datetime] = None) -> Tuple[str, bool]:
    """
    Return (dates parameter, parsed) for a reminder date string.

    ISO dates become all-day events, ISO date-times a one-hour slot.
    Anything else falls back to tomorrow at 09:00 and parsed is False.
    """
    text = (when or "").strip()
    try:
        day = date.fromisoformat(text)
        return f"{day:%Y%m%d}/{day + timedelta(days=1):%Y%m%d}", True
    except ValueError:
        pass
    try:
        start = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return f"{_fmt_datetime(start)}/{_fmt_datetime(start + EVENT_DURATION)}", True
    except ValueError:
        pass

    now = now or datetime.now()
    start = datetime.combine(now.date() + timedelta(days=1), FALLBACK_START)
    return f"{_fmt_datetime(start)}/{_fmt_datetime(start + EVENT_DURATION)}", False


def calendar_link(reminder: Reminder, now: Optional[datetime] = None) -> str:
    """Google Calendar template URL for *reminder*."""
    dates, parsed = event_window(reminder.date, now=now)
    details = reminder.description
    if not parsed and reminder.date:
        details = f"{details}\n\nWhen: {reminder.date}".strip()
    query = {
        "action": "TEMPLATE",
        "text": reminder.title or "Follow-up reminder",
        "dates": dates,
        "details": details,
    }
    return f"{CALENDAR_URL}?{urlencode(query)}"
