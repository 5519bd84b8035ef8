import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urljoin, urlparse

import requests
from urllib3.util.retry import Retry
from requests.adapters import HTTPAdapter
from bs4 import BeautifulSoup


HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/122.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Accept-Encoding": "gzip, deflate",
}

DEFAULT_CONNECT_TIMEOUT = float(os.getenv("FETCH_CONNECT_TIMEOUT", "10"))
DEFAULT_READ_TIMEOUT = float(os.getenv("FETCH_READ_TIMEOUT", "10"))
FETCH_LOG = os.getenv("FETCH_LOG", "0") == "1"

MIN_CONTENT_CHARS = 50
MAX_CONTENT_CHARS = 5000
DEFAULT_TITLE = "Latest Update"

# Tried in order; the first selector that yields an accepted article wins.
ARTICLE_SELECTORS = [
    "article",
    ".news-item",
    ".post",
    ".update",
    ".announcement",
    '[class*="news"]',
    '[class*="update"]',
    '[class*="announcement"]',
]
TITLE_SELECTOR = 'h1, h2, h3, .title, [class*="title"]'
CONTENT_SELECTOR = 'p, .content, [class*="content"]'
DATE_SELECTOR = '.date, [class*="date"], time'
MAIN_CONTENT_SELECTOR = "main, .main-content, #content, .content"

JAMB_ITEM_SELECTOR = 'article, .news-item, .update, .announcement, [class*="news"]'
JAMB_TITLE_SELECTOR = "h1, h2, h3, .title"
JAMB_CONTENT_SELECTOR = "p, .content"
JAMB_DATE_SELECTOR = ".date, time"

_session = None


class FetchError(Exception):
    def __init__(self, source: str, cause: str):
        super().__init__(f"{source}: {cause}")
        self.source = source
        self.cause = cause


@dataclass(frozen=True)
class RawCandidate:
    title: str
    link: str
    content: str
    date: Optional[str] = None


def _get_session() -> requests.Session:
    global _session
    if _session is not None:
        return _session

    session = requests.Session()
    retries = Retry(
        total=0,
        status_forcelist=[],
        allowed_methods=["GET", "HEAD"],
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    _session = session
    return _session


def fetch_url(url: str, headers: dict | None = None) -> tuple[Optional[str], Optional[str]]:
    session = _get_session()
    start_ts = time.monotonic()
    try:
        response = session.get(
            url,
            timeout=(DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT),
            headers=headers or HEADERS,
        )
    except requests.exceptions.Timeout:
        if FETCH_LOG:
            print(f"GET {url} status=timeout")
        return None, "request_error:timeout"
    except requests.exceptions.RequestException as e:
        if FETCH_LOG:
            print(f"GET {url} status=error err={type(e).__name__}")
        return None, f"request_error:{type(e).__name__}"

    elapsed_ms = int((time.monotonic() - start_ts) * 1000)
    if FETCH_LOG:
        print(
            f"GET {url} status={response.status_code} "
            f"content-type={response.headers.get('content-type')} "
            f"bytes={len(response.content)} elapsed={elapsed_ms}ms"
        )
    if response.status_code in (401, 403, 429):
        return None, f"blocked:{response.status_code}"
    if not 200 <= response.status_code < 300:
        return None, f"request_error:HTTP{response.status_code}"
    return response.text, None


def clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _parse(html: str) -> BeautifulSoup:
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return soup


def _first_text(el, selector: str) -> str:
    found = el.select_one(selector)
    if found is None:
        return ""
    return clean_text(found.get_text(separator=" "))


def _all_text(el, selector: str) -> str:
    return clean_text(" ".join(x.get_text(separator=" ") for x in el.select(selector)))


def _first_href(el) -> str:
    a = el.find("a")
    if a is None:
        return ""
    return (a.get("href") or "").strip()


def resolve_link(base_url: str, href: str) -> str:
    try:
        abs_url = urljoin(base_url, href)
        scheme = urlparse(abs_url).scheme
    except ValueError:
        return base_url
    if scheme not in ("http", "https"):
        return base_url
    return abs_url


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _candidate_from(el, base_url: str, title_sel: str, content_sel: str, date_sel: str) -> RawCandidate | None:
    title = _first_text(el, title_sel)
    content = _all_text(el, content_sel)
    if not title or len(content) <= MIN_CONTENT_CHARS:
        return None
    return RawCandidate(
        title=title,
        link=resolve_link(base_url, _first_href(el)),
        content=content[:MAX_CONTENT_CHARS],
        date=_first_text(el, date_sel) or _now_iso(),
    )


def _main_content_candidate(soup: BeautifulSoup, base_url: str) -> RawCandidate | None:
    main = soup.select_one(MAIN_CONTENT_SELECTOR)
    if main is None:
        return None
    content = clean_text(main.get_text(separator=" "))
    if len(content) <= MIN_CONTENT_CHARS:
        return None
    return RawCandidate(
        title=_first_text(soup, "h1, h2") or DEFAULT_TITLE,
        link=base_url,
        content=content[:MAX_CONTENT_CHARS],
        date=_now_iso(),
    )


def extract_articles(html: str, base_url: str) -> list[RawCandidate]:
    soup = _parse(html)
    for selector in ARTICLE_SELECTORS:
        found = []
        for el in soup.select(selector):
            cand = _candidate_from(el, base_url, TITLE_SELECTOR, CONTENT_SELECTOR, DATE_SELECTOR)
            if cand is not None:
                found.append(cand)
        if found:
            return found

    fallback = _main_content_candidate(soup, base_url)
    return [fallback] if fallback else []


def extract_jamb_updates(html: str, base_url: str) -> list[RawCandidate]:
    soup = _parse(html)
    out = []
    for el in soup.select(JAMB_ITEM_SELECTOR):
        cand = _candidate_from(
            el, base_url, JAMB_TITLE_SELECTOR, JAMB_CONTENT_SELECTOR, JAMB_DATE_SELECTOR
        )
        if cand is not None:
            out.append(cand)
    return out
