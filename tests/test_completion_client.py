"""Tests for llm/client.py CompletionClient."""
import unittest
from unittest import mock

import requests

from bridge_config import BridgeConfig
from core.errors import ConfigurationError, InputError, UpstreamError
from llm.client import CompletionClient


def _config(**overrides) -> BridgeConfig:
    values = dict(
        host="127.0.0.1",
        port=3000,
        shared_secret="s",
        llm_api_key="sk-test",
        llm_api_base_url="https://llm.example.com/v1/chat/completions",
        llm_api_type="openai",
        llm_model="gpt-4o",
        llm_temperature=0.2,
        llm_max_tokens=80,
        request_timeout=20.0,
        completion_timeout=10.0,
        instrument="XAUUSD",
        prompt_variant="line",
        system_prompt="RULES",
        system_prompt_source={"type": "default"},
    )
    values.update(overrides)
    return BridgeConfig(**values)


def _response(status_code=200, payload=None, text="", json_error=False):
    response = mock.Mock()
    response.status_code = status_code
    response.text = text
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = payload
    return response


def _envelope(content):
    return {
        "id": "cmpl-1",
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"total_tokens": 42},
    }


class CompletionClientTests(unittest.TestCase):
    def test_returns_completion_text_and_sends_payload(self) -> None:
        client = CompletionClient(_config())
        with mock.patch("llm.client.requests.post", return_value=_response(payload=_envelope("BUY\nUp."))) as post:
            text = client.issue("RULES", "M1 candles ...")

        self.assertEqual(text, "BUY\nUp.")
        post.assert_called_once()
        kwargs = post.call_args.kwargs
        self.assertEqual(kwargs["url"], "https://llm.example.com/v1/chat/completions")
        self.assertEqual(kwargs["timeout"], 10.0)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk-test")
        self.assertNotIn("X-Title", kwargs["headers"])
        self.assertEqual(kwargs["json"]["model"], "gpt-4o")
        self.assertEqual(kwargs["json"]["max_tokens"], 80)
        self.assertEqual(
            kwargs["json"]["messages"],
            [{"role": "system", "content": "RULES"}, {"role": "user", "content": "M1 candles ..."}],
        )

    def test_openrouter_adds_attribution_headers(self) -> None:
        client = CompletionClient(_config(llm_api_type="openrouter"))
        with mock.patch("llm.client.requests.post", return_value=_response(payload=_envelope("HOLD"))) as post:
            client.issue("RULES", "ctx")

        headers = post.call_args.kwargs["headers"]
        self.assertIn("HTTP-Referer", headers)
        self.assertEqual(headers["X-Title"], "Decision Bridge")

    def test_empty_context_fails_without_network_call(self) -> None:
        client = CompletionClient(_config())
        with mock.patch("llm.client.requests.post") as post:
            with self.assertRaises(InputError):
                client.issue("RULES", "   ")
        post.assert_not_called()

    def test_missing_api_key_fails_without_network_call(self) -> None:
        client = CompletionClient(_config(llm_api_key=""))
        with mock.patch("llm.client.requests.post") as post:
            with self.assertRaises(ConfigurationError):
                client.issue("RULES", "ctx")
        post.assert_not_called()

    def test_non_200_status_carries_code_and_truncated_body(self) -> None:
        client = CompletionClient(_config())
        with mock.patch("llm.client.requests.post", return_value=_response(status_code=429, text="x" * 1000)):
            with self.assertRaises(UpstreamError) as ctx:
                client.issue("RULES", "ctx")

        err = ctx.exception
        self.assertEqual(err.context["status_code"], 429)
        self.assertLessEqual(len(err.context["response_text"]), 200)
        self.assertIn("429", err.message)

    def test_error_envelope_is_upstream_error(self) -> None:
        client = CompletionClient(_config())
        payload = {"error": {"message": "Incorrect API key provided"}}
        with mock.patch("llm.client.requests.post", return_value=_response(payload=payload)):
            with self.assertRaises(UpstreamError) as ctx:
                client.issue("RULES", "ctx")
        self.assertIn("Incorrect API key", ctx.exception.context["error"])

    def test_envelope_without_text_is_malformed(self) -> None:
        client = CompletionClient(_config())
        for payload in ({}, {"choices": []}, {"choices": [{"message": {}}]}, _envelope("   "), ["x"]):
            with self.subTest(payload=payload):
                with mock.patch("llm.client.requests.post", return_value=_response(payload=payload)):
                    with self.assertRaises(UpstreamError):
                        client.issue("RULES", "ctx")

    def test_invalid_json_body_is_upstream_error(self) -> None:
        client = CompletionClient(_config())
        with mock.patch("llm.client.requests.post", return_value=_response(json_error=True, text="<html>")):
            with self.assertRaises(UpstreamError):
                client.issue("RULES", "ctx")

    def test_timeout_is_flagged(self) -> None:
        client = CompletionClient(_config())
        with mock.patch("llm.client.requests.post", side_effect=requests.Timeout("read timed out")):
            with self.assertRaises(UpstreamError) as ctx:
                client.issue("RULES", "ctx")
        self.assertTrue(ctx.exception.timed_out)

    def test_network_error_is_not_a_timeout(self) -> None:
        client = CompletionClient(_config())
        with mock.patch("llm.client.requests.post", side_effect=requests.ConnectionError("refused")):
            with self.assertRaises(UpstreamError) as ctx:
                client.issue("RULES", "ctx")
        self.assertFalse(ctx.exception.timed_out)

    def test_never_retries(self) -> None:
        client = CompletionClient(_config())
        with mock.patch("llm.client.requests.post", return_value=_response(status_code=503)) as post:
            with self.assertRaises(UpstreamError):
                client.issue("RULES", "ctx")
        self.assertEqual(post.call_count, 1)

    def test_uses_injected_session(self) -> None:
        session = mock.Mock()
        session.post.return_value = _response(payload=_envelope("SELL"))
        client = CompletionClient(_config(), session=session)

        self.assertEqual(client.issue("RULES", "ctx"), "SELL")
        session.post.assert_called_once()


if __name__ == "__main__":
    unittest.main()
