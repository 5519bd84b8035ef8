import os
import random
import time
from datetime import datetime, timezone

import httpx
from dotenv import load_dotenv
from supabase import create_client as _create_client

_ENV_PATH = os.path.join(os.path.dirname(__file__), ".env")
load_dotenv(_ENV_PATH)

UPDATES_TABLE = "updates"
RUNS_TABLE = "ingest_runs"
SUBSCRIPTIONS_TABLE = "subscriptions"

_sb = None


class PersistError(Exception):
    pass


def create_client(url: str | None = None, key: str | None = None):
    url = url or os.getenv("SUPABASE_URL")
    key = key or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY")
    if not url or not key:
        missing = []
        if not url:
            missing.append("SUPABASE_URL")
        if not (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY")):
            missing.append("SUPABASE_SERVICE_ROLE_KEY or SUPABASE_KEY")
        raise RuntimeError(f"Missing {', '.join(missing)}")
    return _create_client(url, key)


def get_client():
    global _sb
    if _sb:
        return _sb

    _sb = create_client()
    return _sb


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def update_exists(sb, link: str, category: str | None = None) -> bool:
    """
    Exact (case-sensitive) match on the canonical link. The category filter is
    only applied for the exam-board source, whose links may overlap with
    university pages.
    """
    q = sb.table(UPDATES_TABLE).select("id").eq("link", link)
    if category:
        q = q.eq("category", category)
    res = q.limit(1).execute()
    return bool(res.data)


def insert_update(sb, record: dict) -> str | int | None:
    """
    Inserts into 'updates' and returns the store-assigned id.
    Timestamps are always assigned here, never taken from the caller.
    """
    row = dict(record)
    now = _now_iso()
    row["created_at"] = now
    row["updated_at"] = now
    try:
        res = sb.table(UPDATES_TABLE).insert(row).execute()
    except Exception as e:
        raise PersistError(f"insert_failed: {type(e).__name__}: {e}") from e
    if res.data:
        return res.data[0].get("id")
    return None


def list_updates(
    sb,
    category: str | None = None,
    source: str | None = None,
    limit: int = 50,
) -> list[dict]:
    q = sb.table(UPDATES_TABLE).select("*")
    if category:
        q = q.eq("category", category)
    if source:
        q = q.eq("source", source)
    res = q.order("created_at", desc=True).limit(limit).execute()
    return res.data or []


def insert_subscription(sb, email: str, university: str, slug: str) -> None:
    sb.table(SUBSCRIPTIONS_TABLE).insert(
        {
            "email": email,
            "university": university,
            "slug": slug,
            "created_at": _now_iso(),
        }
    ).execute()


def _is_transient_run_row_error(err: Exception) -> bool:
    if isinstance(err, (httpx.ConnectError, httpx.ReadError, httpx.RemoteProtocolError)):
        return True
    msg = str(err)
    transient_markers = [
        "UNEXPECTED_EOF_WHILE_READING",
        "SSL",
        "Connection reset",
        "Broken pipe",
        "timeout",
    ]
    return any(m in msg for m in transient_markers)


def _run_row_retry(fn, *args, delays=(1, 2, 4), **kwargs):
    for i, delay in enumerate(delays, start=1):
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            if not _is_transient_run_row_error(e) or i == len(delays):
                raise
            jitter = random.uniform(0, 0.2)
            print(f"RUN_ROW_RETRY attempt={i} error={str(e)[:200]}")
            time.sleep(delay + jitter)


def start_ingest_run(sb, job_name: str) -> str | None:
    try:
        res = _run_row_retry(
            lambda: sb.table(RUNS_TABLE).insert({"job_name": job_name}).execute()
        )
        return res.data[0]["id"]
    except Exception:
        print("RUN_ROW_UNAVAILABLE proceeding_without_run_row=1")
        return None


def finish_ingest_run(
    sb, run_id: str | None, ok: bool, stats: dict, error: str | None = None
):
    if not run_id:
        return
    payload = {
        "finished_at": _now_iso(),
        "ok": ok,
        "stats": stats or {},
        "error": error,
    }
    try:
        _run_row_retry(
            lambda: sb.table(RUNS_TABLE).update(payload).eq("id", run_id).execute()
        )
    except Exception as e:
        if _is_transient_run_row_error(e):
            print("RUN_ROW_UNAVAILABLE finish_failed=1")
        else:
            print(f"RUN_ROW_UNAVAILABLE finish_failed=1 error={str(e)[:200]}")
