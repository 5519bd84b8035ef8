import os
import unittest
from unittest import mock

import requests

from backend.llm import providers as llm
from backend.llm.providers import (
    CodeHelmProvider,
    GeminiProvider,
    LLMError,
    LLMUnavailable,
    build_providers,
    summary_prompt,
)
from runner.process.summarize import CHAT_FALLBACK, chat, summarize

TEXT = (
    "JAMB has fixed the 2027 UTME for April 24. Registration closes on "
    "February 26 and candidates must use their NIN to obtain a profile code. "
) * 5


class StubProvider:
    def __init__(self, name, reply=None, exc=None):
        self.name = name
        self.reply = reply
        self.exc = exc
        self.calls = 0

    def summarize(self, text, title=""):
        self.calls += 1
        if self.exc:
            raise self.exc
        return self.reply

    def chat(self, message):
        return self.summarize(message)


class TestSummarizeFallback(unittest.TestCase):
    def test_primary_used_when_it_answers(self):
        primary = StubProvider("gemini", reply="UTME holds on April 24.")
        secondary = StubProvider("codehelm", reply="unused")
        self.assertEqual(summarize(TEXT, "UTME", [primary, secondary]), "UTME holds on April 24.")
        self.assertEqual(secondary.calls, 0)

    def test_secondary_used_after_primary_error(self):
        primary = StubProvider("gemini", exc=LLMUnavailable("gemini_timeout"))
        secondary = StubProvider("codehelm", reply="Registration closes Feb 26.")
        self.assertEqual(summarize(TEXT, "UTME", [primary, secondary]), "Registration closes Feb 26.")

    def test_unexpected_provider_exception_is_absorbed(self):
        primary = StubProvider("gemini", exc=KeyError("candidates"))
        secondary = StubProvider("codehelm", reply="ok")
        self.assertEqual(summarize(TEXT, "UTME", [primary, secondary]), "ok")

    def test_empty_reply_falls_through(self):
        primary = StubProvider("gemini", reply="   ")
        secondary = StubProvider("codehelm", reply="second")
        self.assertEqual(summarize(TEXT, "UTME", [primary, secondary]), "second")

    def test_reply_keeps_angle_brackets(self):
        primary = StubProvider("gemini", reply="Cut-off  < 200 and > 180\nmarks.")
        self.assertEqual(summarize(TEXT, "UTME", [primary]), "Cut-off < 200 and > 180 marks.")

    def test_truncation_when_all_fail(self):
        failing = [
            StubProvider("gemini", exc=LLMError("quota")),
            StubProvider("codehelm", exc=LLMUnavailable("down")),
        ]
        out = summarize(TEXT, "UTME", failing)
        self.assertEqual(out, TEXT[:200] + "...")

    def test_never_empty_for_non_empty_input(self):
        failing = [StubProvider("gemini", exc=LLMError("x"))]
        for text in ["a", " ", "short notice", TEXT]:
            self.assertTrue(summarize(text, "", failing))
        self.assertTrue(summarize("notice", "", []))


class TestChatFallback(unittest.TestCase):
    def test_static_message_when_all_fail(self):
        failing = [
            StubProvider("gemini", exc=LLMError("auth")),
            StubProvider("codehelm", exc=LLMUnavailable("down")),
        ]
        self.assertEqual(chat("What is JAMB?", failing), CHAT_FALLBACK)

    def test_secondary_reply(self):
        providers = [
            StubProvider("gemini", exc=LLMError("auth")),
            StubProvider("codehelm", reply="JAMB conducts the UTME."),
        ]
        self.assertEqual(chat("What is JAMB?", providers), "JAMB conducts the UTME.")


def _response(status=200, payload=None, json_exc=None):
    resp = mock.Mock(status_code=status)
    if status >= 400:
        err = requests.exceptions.HTTPError(f"{status} error")
        err.response = resp
        resp.raise_for_status.side_effect = err
    if json_exc is not None:
        resp.json.side_effect = json_exc
    else:
        resp.json.return_value = payload
    return resp


class TestProviders(unittest.TestCase):
    def test_prompt_caps_text(self):
        prompt = summary_prompt("q" * 5000, "Title")
        self.assertIn("Title: Title", prompt)
        self.assertEqual(prompt.count("q"), 3000)

    def test_gemini_parses_candidates(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "Short "}, {"text": "summary."}]}}]}
        with mock.patch.object(llm.requests, "post", return_value=_response(payload=payload)) as post:
            out = GeminiProvider(api_key="k", model="m").summarize(TEXT, "UTME")
        self.assertEqual(out, "Short summary.")
        self.assertIn("/models/m:generateContent", post.call_args.args[0])
        self.assertEqual(post.call_args.kwargs["headers"], {"x-goog-api-key": "k"})

    def test_gemini_without_key_is_unavailable(self):
        with mock.patch.dict(os.environ, {"GEMINI_API_KEY": ""}):
            with self.assertRaises(LLMUnavailable):
                GeminiProvider().generate("hi")

    def test_gemini_malformed_response(self):
        with mock.patch.object(llm.requests, "post", return_value=_response(payload={"error": {}})):
            with self.assertRaises(LLMError):
                GeminiProvider(api_key="k").generate("hi")

    def test_codehelm_summary_payload(self):
        with mock.patch.object(
            llm.requests, "post", return_value=_response(payload={"summary": "Done."})
        ) as post:
            out = CodeHelmProvider(api_key="k", base_url="https://ch.test/v1").summarize("z" * 4000, "T")
        self.assertEqual(out, "Done.")
        self.assertEqual(post.call_args.args[0], "https://ch.test/v1/summarize")
        body = post.call_args.kwargs["json"]
        self.assertEqual(len(body["text"]), 3000)
        self.assertEqual(post.call_args.kwargs["headers"]["Authorization"], "Bearer k")

    def test_http_4xx_is_error_without_retry(self):
        with mock.patch.object(llm.requests, "post", return_value=_response(status=401)) as post:
            with self.assertRaises(LLMError):
                CodeHelmProvider(api_key="k").chat("hello")
        self.assertEqual(post.call_count, 1)

    def test_connection_error_retried_then_unavailable(self):
        with mock.patch.object(llm, "LLM_RETRIES", 1), mock.patch.object(llm.time, "sleep"):
            with mock.patch.object(
                llm.requests, "post", side_effect=requests.exceptions.ConnectionError("refused")
            ) as post:
                with self.assertRaises(LLMUnavailable):
                    CodeHelmProvider(api_key="k").chat("hello")
        self.assertEqual(post.call_count, 2)

    def test_invalid_json_is_error(self):
        with mock.patch.object(
            llm.requests, "post", return_value=_response(json_exc=ValueError("no json"))
        ):
            with self.assertRaises(LLMError):
                CodeHelmProvider(api_key="k").chat("hello")

    def test_build_providers_skips_unknown(self):
        names = [p.name for p in build_providers(["gemini", "nope", "ollama"])]
        self.assertEqual(names, ["gemini", "ollama"])


if __name__ == "__main__":
    unittest.main()
