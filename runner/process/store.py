from backend.db import insert_update, update_exists
from backend.registry import Source


def build_record(candidate, summary: str, source: Source) -> dict:
    return {
        "title": candidate.title,
        "link": candidate.link,
        "content": candidate.content,
        "summary": summary,
        "source": source.name,
        "source_url": source.url,
        "source_slug": source.slug,
        "category": source.category,
        "date": candidate.date,
    }


def save_update(sb, candidate, summary: str, source: Source):
    """
    Inserts into 'updates'. Returns the new id, or raises PersistError.
    The dedup check is done by the caller before the summary is generated.
    """
    if not candidate.link:
        raise ValueError("Update missing link")
    return insert_update(sb, build_record(candidate, summary, source))


def is_duplicate(sb, candidate, source: Source, scope_category: bool = False) -> bool:
    return update_exists(sb, candidate.link, source.category if scope_category else None)
