import json
from dataclasses import dataclass
from pathlib import Path

DATA_DIR = Path(__file__).resolve().parent / "data"
UNIVERSITIES_PATH = DATA_DIR / "universities.json"
JAMB_EVENTS_PATH = DATA_DIR / "jamb.json"

CATEGORIES = ("Federal", "State", "Private", "JAMB")
FEATURED_SLUGS = ("unilag", "ui", "abu-zaria", "unn", "oau")


@dataclass(frozen=True)
class Source:
    name: str
    slug: str
    category: str
    url: str


JAMB_SOURCE = Source(
    name="JAMB",
    slug="jamb",
    category="JAMB",
    url="https://www.jamb.gov.ng",
)

_universities: tuple[Source, ...] | None = None
_jamb_events: tuple[dict, ...] | None = None


def load_json(path: Path):
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def get_universities() -> tuple[Source, ...]:
    global _universities
    if _universities is not None:
        return _universities

    rows = load_json(UNIVERSITIES_PATH)
    _universities = tuple(
        Source(
            name=row["name"],
            slug=row["slug"],
            category=row["category"],
            url=row["url"],
        )
        for row in rows
    )
    return _universities


def get_university(slug: str) -> Source | None:
    for uni in get_universities():
        if uni.slug == slug:
            return uni
    return None


def get_featured() -> list[Source]:
    return [u for u in get_universities() if u.slug in FEATURED_SLUGS][:5]


def get_jamb_events() -> tuple[dict, ...]:
    """Bundled JAMB notices; entries with a `deadline` feed the countdown."""
    global _jamb_events
    if _jamb_events is not None:
        return _jamb_events

    _jamb_events = tuple(load_json(JAMB_EVENTS_PATH))
    return _jamb_events
