import fcntl
import signal
import sys
import time
import traceback
from contextlib import contextmanager

from dotenv import load_dotenv

from backend.config import get_bool, get_int, get_list
from backend.db import PersistError, finish_ingest_run, get_client, start_ingest_run
from backend.registry import JAMB_SOURCE, Source, get_universities
from runner.process.store import is_duplicate, save_update
from runner.process.summarize import summarize
from .extract import HEADERS, FetchError, extract_articles, extract_jamb_updates, fetch_url

load_dotenv()

LOCK_PATH = "/tmp/campusai_fetch_updates.lock"
JOB_NAME = "fetch_updates"


class IngestLocked(RuntimeError):
    pass


def _settings() -> dict:
    return {
        "max_sources": max(get_int("MAX_SOURCES", 50), 0),
        "max_articles": max(get_int("MAX_ARTICLES_PER_SOURCE", 10), 0),
        "article_delay": (get_int("ARTICLE_DELAY_MS", 2000) or 0) / 1000.0,
        "source_delay": (get_int("SOURCE_DELAY_MS", 3000) or 0) / 1000.0,
        "source_ids": set(get_list("SOURCE_IDS")),
        "skip_jamb": get_bool("SKIP_JAMB", False),
    }


@contextmanager
def _run_lock(path: str = LOCK_PATH):
    lock_fd = open(path, "w")
    try:
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            raise IngestLocked(f"another ingest run holds {path}") from e
        yield
    finally:
        lock_fd.close()


def _new_stats() -> dict:
    return {
        "total": 0,
        "saved": 0,
        "skipped_existing": 0,
        "failed": 0,
        "fetch_failed": 0,
        "by_source": {},
    }


def _bs(stats: dict, slug: str) -> dict:
    return stats["by_source"].setdefault(
        slug,
        {
            "candidates": 0,
            "processed": 0,
            "saved": 0,
            "skipped_existing": 0,
            "failed": 0,
            "last_error": None,
        },
    )


def fetch_source_page(source: Source) -> str:
    html, err = fetch_url(source.url, HEADERS)
    if err:
        raise FetchError(source.slug, err)
    return html or ""


def process_candidates(
    sb,
    source: Source,
    candidates: list,
    stats: dict,
    *,
    max_articles: int,
    article_delay: float,
    scope_category: bool = False,
    sleep=time.sleep,
    stop=lambda: False,
) -> int:
    bs = _bs(stats, source.slug)
    bs["candidates"] = len(candidates)
    processed = 0
    for cand in candidates[:max_articles]:
        if stop():
            print(f"SOURCE_STOPPED source={source.slug} processed={processed}")
            break
        processed += 1
        try:
            if is_duplicate(sb, cand, source, scope_category=scope_category):
                bs["skipped_existing"] += 1
                stats["skipped_existing"] += 1
                print(f"ARTICLE_EXISTS source={source.slug} link={cand.link}")
                continue

            summary = summarize(cand.content, cand.title)
            update_id = save_update(sb, cand, summary, source)
            bs["saved"] += 1
            stats["saved"] += 1
            print(f"ARTICLE_SAVED source={source.slug} id={update_id} title={cand.title[:80]!r}")
            sleep(article_delay)
        except PersistError as e:
            bs["failed"] += 1
            stats["failed"] += 1
            bs["last_error"] = str(e)[:200]
            print(f"SAVE_FAIL source={source.slug} link={cand.link} err={str(e)[:200]}", file=sys.stderr)
        except Exception as e:
            bs["failed"] += 1
            stats["failed"] += 1
            bs["last_error"] = f"{type(e).__name__}: {str(e)[:200]}"
            print(
                f"ARTICLE_FAIL source={source.slug} link={cand.link} "
                f"err={type(e).__name__}: {str(e)[:200]}",
                file=sys.stderr,
            )
    bs["processed"] = processed
    return processed


def ingest_source(
    sb,
    source: Source,
    stats: dict,
    *,
    extractor=extract_articles,
    scope_category: bool = False,
    max_articles: int = 10,
    article_delay: float = 2.0,
    sleep=time.sleep,
    stop=lambda: False,
) -> int:
    print(f"SOURCE_START source={source.slug} url={source.url}")
    try:
        html = fetch_source_page(source)
        candidates = extractor(html, source.url)
    except FetchError as e:
        stats["fetch_failed"] += 1
        _bs(stats, source.slug)["last_error"] = e.cause
        print(f"FETCH_FAIL source={e.source} err={e.cause}", file=sys.stderr)
        return 0
    except Exception as e:
        stats["fetch_failed"] += 1
        _bs(stats, source.slug)["last_error"] = f"{type(e).__name__}: {str(e)[:200]}"
        print(f"SOURCE_FAIL source={source.slug} err={type(e).__name__}: {e}", file=sys.stderr)
        return 0

    if not candidates:
        _bs(stats, source.slug)
        print(f"SOURCE_EMPTY source={source.slug}")
        return 0

    count = process_candidates(
        sb,
        source,
        candidates,
        stats,
        max_articles=max_articles,
        article_delay=article_delay,
        scope_category=scope_category,
        sleep=sleep,
        stop=stop,
    )
    print(f"SOURCE_DONE source={source.slug} candidates={len(candidates)} processed={count}")
    return count


def run_all(sb=None, sources=None, *, sleep=time.sleep, stop=lambda: False, lock_path: str = LOCK_PATH) -> int:
    """
    Runs the whole pipeline once: every configured university page, then the
    JAMB site with its own extraction rules. Returns the number of candidates
    that went through dedup/summarize/persist.
    """
    cfg = _settings()
    sb = sb or get_client()
    if sources is None:
        sources = list(get_universities())
        if cfg["source_ids"]:
            sources = [s for s in sources if s.slug in cfg["source_ids"]]
            print(f"SOURCE_FILTER ids={','.join(sorted(cfg['source_ids']))}")
    sources = list(sources)[: cfg["max_sources"]]

    with _run_lock(lock_path):
        run_id = start_ingest_run(sb, JOB_NAME)
        stats = _new_stats()
        total = 0
        error_msg = None
        started_ts = time.monotonic()
        try:
            for source in sources:
                if stop():
                    print("RUN_STOPPED reason=signal")
                    break
                total += ingest_source(
                    sb,
                    source,
                    stats,
                    max_articles=cfg["max_articles"],
                    article_delay=cfg["article_delay"],
                    sleep=sleep,
                    stop=stop,
                )
                sleep(cfg["source_delay"])

            if not cfg["skip_jamb"] and not stop():
                total += ingest_source(
                    sb,
                    JAMB_SOURCE,
                    stats,
                    extractor=extract_jamb_updates,
                    scope_category=True,
                    max_articles=cfg["max_articles"],
                    article_delay=cfg["article_delay"],
                    sleep=sleep,
                    stop=stop,
                )
        except Exception as e:
            error_msg = f"{type(e).__name__}: {e}"
            raise
        finally:
            stats["total"] = total
            stats["elapsed_sec"] = round(time.monotonic() - started_ts, 1)
            finish_ingest_run(sb, run_id, error_msg is None, stats, error_msg)

    print(
        f"RUN_DONE total={total} saved={stats['saved']} "
        f"skipped_existing={stats['skipped_existing']} failed={stats['failed']} "
        f"fetch_failed={stats['fetch_failed']} elapsed={stats['elapsed_sec']}s"
    )
    return total


def main() -> int:
    terminate = False

    def _handle_term(signum, frame):
        nonlocal terminate
        terminate = True

    signal.signal(signal.SIGTERM, _handle_term)
    signal.signal(signal.SIGINT, _handle_term)

    try:
        run_all(stop=lambda: terminate)
    except IngestLocked:
        print("JOB_LOCKED exit=1")
        return 1
    except Exception:
        traceback.print_exc()
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
