import os
import sys

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.config import get_list
from backend.db import get_client, insert_subscription, list_updates
from backend.deadlines import countdown, important_dates, next_event
from backend.registry import CATEGORIES, get_featured, get_jamb_events, get_universities, get_university
from runner.ingest.page_ingest import run_all
from runner.process.summarize import chat as chat_reply

load_dotenv()

app = FastAPI(title="CampusAI API")

ALLOWED_ORIGINS = get_list("ALLOWED_ORIGINS", ["http://localhost:3000"])

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error(request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        return JSONResponse(status_code=405, content={"error": "Method not allowed"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


def require_cron(authorization: str | None = Header(default=None)):
    secret = os.environ.get("CRON_SECRET")
    if secret and authorization != f"Bearer {secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def _school_dict(uni) -> dict:
    return {"name": uni.name, "slug": uni.slug, "category": uni.category, "url": uni.url}


def _matches(item: dict, q: str) -> bool:
    q = q.lower()
    return any(q in (item.get(k) or "").lower() for k in ("title", "summary", "source"))


def _sample_jamb_updates() -> list[dict]:
    return [
        {"id": f"sample-{i}", **event, "source": "JAMB"}
        for i, event in enumerate(get_jamb_events())
    ]


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/api/scrape", dependencies=[Depends(require_cron)])
def scrape():
    try:
        count = run_all()
    except Exception as e:
        print(f"SCRAPE_FAIL err={type(e).__name__}: {e}", file=sys.stderr)
        return JSONResponse(
            status_code=500,
            content={"error": "Scraping failed", "message": str(e)},
        )
    return {"success": True, "count": count}


@app.post("/api/chat")
async def chat(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    message = payload.get("message") if isinstance(payload, dict) else None
    if not message or not isinstance(message, str):
        return JSONResponse(status_code=400, content={"error": "Message is required"})
    return {"response": await run_in_threadpool(chat_reply, message)}


@app.get("/api/updates")
def updates(
    category: str | None = None,
    source: str | None = None,
    q: str | None = None,
    limit: int = Query(50, ge=1, le=200),
):
    if category == "all":
        category = None
    if category and category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Unknown category: {category}")
    items = list_updates(get_client(), category=category, source=source, limit=limit)
    if q:
        items = [i for i in items if _matches(i, q)]
    return {"items": items, "count": len(items)}


@app.get("/api/schools")
def schools(category: str | None = None, featured: bool = False):
    unis = get_featured() if featured else list(get_universities())
    if category:
        unis = [u for u in unis if u.category == category]
    return {"items": [_school_dict(u) for u in unis], "count": len(unis)}


@app.get("/api/schools/{slug}")
def school(slug: str, limit: int = Query(50, ge=1, le=200)):
    uni = get_university(slug)
    if uni is None:
        raise HTTPException(status_code=404, detail="University not found")
    items = list_updates(get_client(), source=uni.name, limit=limit)
    return {"university": _school_dict(uni), "items": items, "count": len(items)}


@app.get("/api/jamb")
def jamb(limit: int = Query(50, ge=1, le=200)):
    try:
        items = list_updates(get_client(), category="JAMB", limit=limit)
    except Exception as e:
        print(f"JAMB_UPDATES_UNAVAILABLE err={type(e).__name__}: {str(e)[:200]}", file=sys.stderr)
        items = []
    if not items:
        items = _sample_jamb_updates()

    event = next_event()
    return {
        "items": items,
        "count": len(items),
        "next_event": event,
        "countdown": countdown(event["deadline"]) if event else None,
        "important_dates": important_dates(),
    }


@app.get("/api/jamb/countdown")
def jamb_countdown():
    event = next_event()
    return {
        "event": event,
        "countdown": countdown(event["deadline"]) if event else None,
    }


class SubscriptionIn(BaseModel):
    email: str
    slug: str


@app.post("/api/subscriptions")
def subscribe(payload: SubscriptionIn):
    email = payload.email.strip()
    if "@" not in email:
        raise HTTPException(status_code=400, detail="Invalid email")
    uni = get_university(payload.slug)
    if uni is None:
        raise HTTPException(status_code=404, detail="University not found")
    insert_subscription(get_client(), email, uni.name, uni.slug)
    return {"ok": True}
