"""Completion provider client.

Issues exactly one chat-completions request per call with a hard deadline
and returns the raw reply text. Every failure is raised as a BridgeError
subclass; nothing here retries.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

import requests

from core.errors import ConfigurationError, InputError, UpstreamError
from llm.prompt import build_messages
from utils.text import truncate

if TYPE_CHECKING:
    from bridge_config import BridgeConfig

BODY_EXCERPT_LIMIT = 200


class CompletionClient:
    """Thin wrapper over an OpenAI-compatible chat-completions endpoint."""

    def __init__(self, config: "BridgeConfig", session: Optional[requests.Session] = None):
        self._config = config
        self._http = session or requests

    @property
    def timeout(self) -> float:
        return self._config.completion_timeout

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._config.llm_api_key}",
            "Content-Type": "application/json",
        }
        if self._config.llm_api_type == "openrouter":
            headers["HTTP-Referer"] = "https://github.com/decision-bridge"
            headers["X-Title"] = "Decision Bridge"
        return headers

    def _payload(self, system_prompt: str, market_context: str) -> Dict[str, Any]:
        return {
            "model": self._config.llm_model,
            "messages": build_messages(system_prompt, market_context),
            "temperature": self._config.llm_temperature,
            "max_tokens": self._config.llm_max_tokens,
        }

    def issue(self, system_prompt: str, market_context: str) -> str:
        """Send one completion request and return the reply text.

        Args:
            system_prompt: Rules text sent as the system message.
            market_context: Caller-supplied market snapshot.

        Returns:
            The text of ``choices[0].message.content``.

        Raises:
            InputError: ``market_context`` is empty; no request is made.
            ConfigurationError: No API key is configured; no request is made.
            UpstreamError: Non-200 status, malformed envelope, network error
                or timeout.
        """
        if not market_context or not market_context.strip():
            raise InputError("Market context is empty")
        if not self._config.llm_api_key:
            raise ConfigurationError("No LLM API key configured (set LLM_API_KEY or OPENAI_API_KEY)")

        try:
            response = self._http.post(
                url=self._config.llm_api_base_url,
                headers=self._headers(),
                json=self._payload(system_prompt, market_context),
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise UpstreamError(
                f"LLM API timeout after {self.timeout:.1f}s",
                context={"timeout": True},
            ) from exc
        except requests.RequestException as exc:
            raise UpstreamError(
                "LLM API request failed",
                context={"error": truncate(str(exc), BODY_EXCERPT_LIMIT)},
            ) from exc

        if response.status_code != 200:
            raise UpstreamError(
                f"LLM API error: {response.status_code}",
                context={
                    "status_code": response.status_code,
                    "response_text": truncate(response.text, BODY_EXCERPT_LIMIT),
                },
            )

        try:
            result = response.json()
        except ValueError as exc:
            raise UpstreamError(
                "LLM API returned invalid JSON",
                context={"response_text": truncate(response.text, BODY_EXCERPT_LIMIT)},
            ) from exc

        return self._extract_content(result)

    @staticmethod
    def _extract_content(result: Any) -> str:
        if not isinstance(result, dict):
            raise UpstreamError("LLM API returned a malformed envelope")

        error = result.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise UpstreamError(
                "LLM API reported an error",
                context={"error": truncate(str(message), BODY_EXCERPT_LIMIT)},
            )

        choices = result.get("choices")
        if not choices or not isinstance(choices, list):
            raise UpstreamError("LLM API returned no choices")

        primary_choice = choices[0] if isinstance(choices[0], dict) else {}
        message = primary_choice.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise UpstreamError(
                "LLM API returned a malformed envelope: no completion text",
                context={"finish_reason": primary_choice.get("finish_reason")},
            )

        usage = result.get("usage")
        if isinstance(usage, dict):
            logging.info(
                "LLM reply received (id=%s, finish_reason=%s, total_tokens=%s)",
                result.get("id"),
                primary_choice.get("finish_reason"),
                usage.get("total_tokens"),
            )
        return content
