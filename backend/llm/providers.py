import os
import time

import requests
from dotenv import load_dotenv
from requests.exceptions import ConnectionError, HTTPError, Timeout

from backend.config import get_int

load_dotenv()

LLM_TIMEOUT = get_int("LLM_TIMEOUT", 30) or 30
LLM_RETRIES = get_int("LLM_RETRIES", 1) or 0
PROMPT_TEXT_CHARS = 3000
CHAT_CONTEXT = "Nigerian universities and JAMB updates"


class LLMUnavailable(Exception):
    pass


class LLMError(Exception):
    pass


def summary_prompt(text: str, title: str = "") -> str:
    return (
        "Summarize the following news article in 2-3 sentences. "
        "Focus on key information and important dates:\n\n"
        f"Title: {title}\n"
        f"Content: {(text or '')[:PROMPT_TEXT_CHARS]}\n\n"
        "Provide a concise summary:"
    )


def chat_prompt(message: str) -> str:
    return (
        "You are a helpful assistant for CampusAI.ng, a platform providing "
        "information about Nigerian universities and JAMB updates.\n\n"
        f"User question: {message}\n\n"
        "Provide a helpful, accurate, and concise response. If you don't know "
        "something, say so. Focus on Nigerian education system, universities, "
        "and JAMB-related information."
    )


def post_json(url: str, payload: dict, headers: dict | None = None, name: str = "llm") -> dict:
    connect_timeout = 5
    read_timeout = max(1, int(LLM_TIMEOUT))
    last_exc: Exception | None = None
    for attempt in range(LLM_RETRIES + 1):
        try:
            resp = requests.post(
                url,
                json=payload,
                headers=headers,
                timeout=(connect_timeout, read_timeout),
            )
            resp.raise_for_status()
        except ConnectionError as e:
            last_exc = e
            if attempt < LLM_RETRIES:
                time.sleep(0.5)
                continue
            raise LLMUnavailable(f"{name}_connection_error: {e}") from e

        except HTTPError as e:
            last_exc = e
            status = getattr(getattr(e, "response", None), "status_code", None)
            if status and status >= 500 and attempt < LLM_RETRIES:
                time.sleep(0.5)
                continue
            raise LLMError(f"{name}_http_error status={status}: {e}") from e

        except Timeout as e:
            raise LLMUnavailable(f"{name}_timeout: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError(f"{name}_malformed_response: {e}") from e
        if not isinstance(data, dict):
            raise LLMError(f"{name}_malformed_response: not an object")
        return data

    raise LLMUnavailable(f"{name}_failed: {last_exc}") from last_exc


def _require_text(value, name: str) -> str:
    text = (value or "").strip() if isinstance(value, str) else ""
    if not text:
        raise LLMError(f"{name}_empty_response")
    return text


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str | None = None, model: str | None = None, base_url: str | None = None):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.model = model or os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.base_url = (
            base_url
            or os.getenv("GEMINI_URL", "https://generativelanguage.googleapis.com/v1beta")
        ).rstrip("/")

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise LLMUnavailable("gemini_missing_key")
        data = post_json(
            f"{self.base_url}/models/{self.model}:generateContent",
            {"contents": [{"parts": [{"text": prompt}]}]},
            headers={"x-goog-api-key": self.api_key},
            name=self.name,
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"gemini_malformed_response: {e!r}") from e
        text = "".join(p.get("text") or "" for p in parts if isinstance(p, dict))
        return _require_text(text, self.name)

    def summarize(self, text: str, title: str = "") -> str:
        return self.generate(summary_prompt(text, title))

    def chat(self, message: str) -> str:
        return self.generate(chat_prompt(message))


class CodeHelmProvider:
    name = "codehelm"

    def __init__(self, api_key: str | None = None, base_url: str | None = None):
        self.api_key = api_key or os.getenv("CODEHELM_API_KEY")
        self.base_url = (base_url or os.getenv("CODEHELM_URL", "https://api.codehelm.ai/v1")).rstrip("/")

    def _headers(self) -> dict:
        if not self.api_key:
            raise LLMUnavailable("codehelm_missing_key")
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def summarize(self, text: str, title: str = "") -> str:
        data = post_json(
            f"{self.base_url}/summarize",
            {"text": (text or "")[:PROMPT_TEXT_CHARS], "title": title},
            headers=self._headers(),
            name=self.name,
        )
        return _require_text(data.get("summary"), self.name)

    def chat(self, message: str) -> str:
        data = post_json(
            f"{self.base_url}/chat",
            {"message": message, "context": CHAT_CONTEXT},
            headers=self._headers(),
            name=self.name,
        )
        return _require_text(data.get("response"), self.name)


class OllamaProvider:
    name = "ollama"

    def __init__(self, base_url: str | None = None, model: str | None = None):
        self.base_url = (base_url or os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")).rstrip("/")
        self.model = model or os.getenv("OLLAMA_MODEL", "llama3")

    def generate(self, prompt: str) -> str:
        data = post_json(
            f"{self.base_url}/api/generate",
            {
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "options": {"num_predict": 200, "temperature": 0.2},
            },
            name=self.name,
        )
        return _require_text(data.get("response"), self.name)

    def summarize(self, text: str, title: str = "") -> str:
        return self.generate(summary_prompt(text, title))

    def chat(self, message: str) -> str:
        return self.generate(chat_prompt(message))


PROVIDERS = {
    "gemini": GeminiProvider,
    "codehelm": CodeHelmProvider,
    "ollama": OllamaProvider,
}


def build_providers(names: list[str]) -> list:
    out = []
    for name in names:
        cls = PROVIDERS.get(name)
        if cls is None:
            print(f"LLM_PROVIDER_UNKNOWN name={name}")
            continue
        out.append(cls())
    return out
