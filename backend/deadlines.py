from datetime import datetime, timezone

from backend.registry import get_jamb_events


def _parse_ts(val: str | None) -> datetime | None:
    if not val:
        return None
    try:
        ts = datetime.fromisoformat(val.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def next_event(events=None, now: datetime | None = None) -> dict | None:
    """Earliest event whose deadline is still in the future."""
    now = now or datetime.now(timezone.utc)
    events = get_jamb_events() if events is None else events
    upcoming = []
    for event in events:
        deadline = _parse_ts(event.get("deadline"))
        if deadline and deadline > now:
            upcoming.append((deadline, event))
    if not upcoming:
        return None
    upcoming.sort(key=lambda x: x[0])
    return upcoming[0][1]


def countdown(deadline: str | None, now: datetime | None = None) -> dict | None:
    ts = _parse_ts(deadline)
    if ts is None:
        return None
    now = now or datetime.now(timezone.utc)
    remaining = int((ts - now).total_seconds())
    if remaining <= 0:
        return None
    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return {"days": days, "hours": hours, "minutes": minutes, "seconds": seconds}


def important_dates(events=None, now: datetime | None = None) -> list[dict]:
    now = now or datetime.now(timezone.utc)
    events = get_jamb_events() if events is None else events
    out = []
    for event in events:
        deadline = _parse_ts(event.get("deadline"))
        if not deadline:
            continue
        out.append(
            {
                "title": event.get("title"),
                "category": event.get("category"),
                "deadline": event.get("deadline"),
                "upcoming": deadline > now,
            }
        )
    return out
