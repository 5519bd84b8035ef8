import sys

from backend.db import RUNS_TABLE, SUBSCRIPTIONS_TABLE, UPDATES_TABLE, get_client


def check_tables(sb) -> dict[str, str | None]:
    """Returns table -> error (None when a one-row read succeeded)."""
    out: dict[str, str | None] = {}
    for table in (UPDATES_TABLE, RUNS_TABLE, SUBSCRIPTIONS_TABLE):
        try:
            sb.table(table).select("id").limit(1).execute()
            out[table] = None
        except Exception as e:
            out[table] = f"{type(e).__name__}: {str(e)[:200]}"
    return out


def main(sb=None) -> int:
    sb = sb or get_client()
    results = check_tables(sb)
    for table, err in results.items():
        if err:
            print(f"TABLE_FAIL table={table} err={err}", file=sys.stderr)
        else:
            print(f"TABLE_OK table={table}")

    if results.get(RUNS_TABLE) is None:
        r = (
            sb.table(RUNS_TABLE)
            .select("id,job_name,started_at,ok")
            .order("started_at", desc=True)
            .limit(3)
            .execute()
        )
        print("ingest_runs latest:", r.data)

    return 1 if any(results.values()) else 0


if __name__ == "__main__":
    raise SystemExit(main())
