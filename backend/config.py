import os


def _raw(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


def get_int(name: str, default: int | None = None) -> int | None:
    raw = _raw(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_bool(name: str, default: bool = False) -> bool:
    raw = _raw(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}


def get_list(name: str, default: list[str] | None = None) -> list[str]:
    """Comma-separated, lowercased; empty or unset gives the default."""
    raw = _raw(name)
    if raw is None:
        return list(default or [])
    return [part.strip().lower() for part in raw.split(",") if part.strip()]
