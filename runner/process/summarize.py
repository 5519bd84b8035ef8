import re
import sys

from dotenv import load_dotenv

from backend.config import get_list
from backend.llm.providers import LLMError, LLMUnavailable, build_providers

load_dotenv()

DEFAULT_PROVIDERS = ["gemini", "codehelm"]
FALLBACK_CHARS = 200
CHAT_FALLBACK = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again later or contact support. For immediate assistance, you "
    "can browse our updates or check the JAMB official website."
)


def clean_text(text: str) -> str:
    # Model replies are plain text; "<" and ">" are kept.
    return re.sub(r"\s+", " ", text or "").strip()


def summary_providers() -> list:
    return build_providers(get_list("SUMMARY_PROVIDERS", DEFAULT_PROVIDERS))


def chat_providers() -> list:
    return build_providers(get_list("CHAT_PROVIDERS", DEFAULT_PROVIDERS))


def fallback_summary(text: str) -> str:
    return (text or "")[:FALLBACK_CHARS] + "..."


def summarize(text: str, title: str = "", providers: list | None = None) -> str:
    """
    Never raises. Providers are tried in order; when every one fails the
    summary degrades to a plain truncation of the source text.
    """
    providers = summary_providers() if providers is None else providers
    for provider in providers:
        name = getattr(provider, "name", type(provider).__name__)
        try:
            summary = clean_text(provider.summarize(text, title))
        except (LLMUnavailable, LLMError) as e:
            print(f"SUMMARY_PROVIDER_FAIL provider={name} err={str(e)[:200]}", file=sys.stderr)
            continue
        except Exception as e:
            print(
                f"SUMMARY_PROVIDER_FAIL provider={name} err={type(e).__name__}: {str(e)[:200]}",
                file=sys.stderr,
            )
            continue
        if summary:
            return summary
        print(f"SUMMARY_PROVIDER_FAIL provider={name} err=empty", file=sys.stderr)

    print(f"SUMMARY_FALLBACK reason=all_providers_failed title={title[:80]!r}")
    return fallback_summary(text)


def chat(message: str, providers: list | None = None) -> str:
    providers = chat_providers() if providers is None else providers
    for provider in providers:
        name = getattr(provider, "name", type(provider).__name__)
        try:
            reply = (provider.chat(message) or "").strip()
        except (LLMUnavailable, LLMError) as e:
            print(f"CHAT_PROVIDER_FAIL provider={name} err={str(e)[:200]}", file=sys.stderr)
            continue
        except Exception as e:
            print(
                f"CHAT_PROVIDER_FAIL provider={name} err={type(e).__name__}: {str(e)[:200]}",
                file=sys.stderr,
            )
            continue
        if reply:
            return reply

    print("CHAT_FALLBACK reason=all_providers_failed")
    return CHAT_FALLBACK
