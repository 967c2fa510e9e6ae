"""
Bridge request handler.

One call to ``BridgeHandler.handle`` runs a full request lifecycle:

    AUTHENTICATING -> DISPATCHING -> AWAITING -> PARSING -> VALIDATING -> RESPONDING

with FAILED reachable from every state. Whatever happens inside, a request
that passes authentication always ends with a schema-valid decision body;
failures produce a HOLD fallback.

The completion call runs on a worker thread and is raced against the outer
deadline in the request thread. Only the request thread builds the
response, so a call that finishes after the deadline has nowhere to write.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from core.auth import require_credential
from core.decision import TradeDecision
from core.errors import (
    AuthError,
    BridgeError,
    ConfigurationError,
    InputError,
    ParseError,
    UpstreamError,
    ValidationError,
)
from core.normalizer import candidate_summary, normalize
from llm.client import CompletionClient
from llm.parser import Candidate, parse_reply
from utils.text import truncate

if TYPE_CHECKING:
    from bridge_config import BridgeConfig

MARKET_CONTEXT_FIELD = "market_data"
REASON_LIMIT = 200


class RequestState(str, Enum):
    AUTHENTICATING = "AUTHENTICATING"
    DISPATCHING = "DISPATCHING"
    AWAITING = "AWAITING"
    PARSING = "PARSING"
    VALIDATING = "VALIDATING"
    RESPONDING = "RESPONDING"
    FAILED = "FAILED"


@dataclass(frozen=True)
class BridgeResponse:
    """HTTP-agnostic result of one request."""

    status_code: int
    body: Dict[str, Any]
    state: RequestState
    decision: Optional[TradeDecision] = None


class _Lifecycle:
    """Per-request state tracker; never shared between requests."""

    def __init__(self, origin: Optional[str]):
        self.request_id = uuid.uuid4().hex[:8]
        self.origin = origin or "unknown"
        self.state = RequestState.AUTHENTICATING
        self.started = time.monotonic()

    def advance(self, state: RequestState) -> None:
        logging.debug("[%s] %s -> %s", self.request_id, self.state.value, state.value)
        self.state = state

    def elapsed_ms(self) -> float:
        return round((time.monotonic() - self.started) * 1000, 2)


class BridgeHandler:
    """Orchestrates auth, completion, parsing and normalization per request."""

    def __init__(
        self,
        config: "BridgeConfig",
        client: Optional[CompletionClient] = None,
        parse: Callable[[str], Candidate] = parse_reply,
    ):
        self._config = config
        self._client = client or CompletionClient(config)
        self._parse = parse

    @property
    def config(self) -> "BridgeConfig":
        return self._config

    def handle(
        self,
        credential: Optional[str],
        payload: Any,
        origin: Optional[str] = None,
    ) -> BridgeResponse:
        """Run one decision request end to end.

        Args:
            credential: Value of the shared-secret header, if any.
            payload: Decoded JSON body; expected to hold ``market_data``.
            origin: Caller identifier for logs (remote address).

        Returns:
            401 with ``{"error": "Unauthorized"}`` on a bad credential,
            otherwise a decision body (HOLD fallback on any failure).
        """
        lifecycle = _Lifecycle(origin)
        try:
            require_credential(credential, self._config.shared_secret, origin)
        except AuthError as exc:
            lifecycle.advance(RequestState.FAILED)
            logging.debug("[%s] %s", lifecycle.request_id, exc)
            return BridgeResponse(401, {"error": "Unauthorized"}, lifecycle.state)

        return self._process(payload, lifecycle)

    def process(self, payload: Any, origin: Optional[str] = None) -> BridgeResponse:
        """Run a request that has already been authenticated (local callers)."""
        return self._process(payload, _Lifecycle(origin))

    def _process(self, payload: Any, lifecycle: _Lifecycle) -> BridgeResponse:
        lifecycle.advance(RequestState.DISPATCHING)
        try:
            market_context = self._market_context(payload)
            logging.info(
                "[%s] Decision request from %s (%d chars)",
                lifecycle.request_id,
                lifecycle.origin,
                len(market_context),
            )
            decision = self._decide(market_context, lifecycle)
        except InputError as exc:
            return self._fail(lifecycle, 400, "No market_data provided", exc)
        except UpstreamError as exc:
            if exc.timed_out:
                reason = f"Upstream timeout; holding ({exc.message})"
            else:
                reason = f"Upstream error; holding ({exc.message})"
            return self._fail(lifecycle, 200, reason, exc)
        except ConfigurationError as exc:
            return self._fail(lifecycle, 200, "LLM not configured; holding", exc)
        except ParseError as exc:
            return self._fail(lifecycle, 200, f"Unparseable model reply; holding ({exc.message})", exc)
        except ValidationError as exc:
            return self._fail(lifecycle, 200, f"Invalid model decision; holding ({exc.message})", exc)
        except BridgeError as exc:
            return self._fail(lifecycle, 200, f"Bridge error; holding ({exc.message})", exc)
        except Exception as exc:  # noqa: BLE001
            logging.exception("[%s] Unexpected error while handling decision request", lifecycle.request_id)
            return self._fail(lifecycle, 200, "Internal error; holding", exc)

        lifecycle.advance(RequestState.RESPONDING)
        logging.info(
            "[%s] -> %s | %s (%.2f ms)",
            lifecycle.request_id,
            decision.kind.value,
            decision.reason,
            lifecycle.elapsed_ms(),
        )
        return BridgeResponse(200, decision.to_response(), lifecycle.state, decision)

    @staticmethod
    def _market_context(payload: Any) -> str:
        if not isinstance(payload, Mapping):
            raise InputError("Request body must be a JSON object")
        value = payload.get(MARKET_CONTEXT_FIELD)
        if not isinstance(value, str) or not value.strip():
            raise InputError("Missing or empty market_data")
        return value

    def _decide(self, market_context: str, lifecycle: _Lifecycle) -> TradeDecision:
        lifecycle.advance(RequestState.AWAITING)
        reply = self._await_completion(market_context, lifecycle)

        lifecycle.advance(RequestState.PARSING)
        candidate = self._parse(reply)
        logging.debug("[%s] Candidate: %s", lifecycle.request_id, candidate_summary(candidate))

        lifecycle.advance(RequestState.VALIDATING)
        return normalize(candidate)

    def _await_completion(self, market_context: str, lifecycle: _Lifecycle) -> str:
        deadline = self._config.request_timeout
        future: Future = Future()
        worker = threading.Thread(
            target=self._run_completion,
            args=(future, market_context),
            name=f"completion-{lifecycle.request_id}",
            daemon=True,
        )
        worker.start()
        remaining = max(deadline - (time.monotonic() - lifecycle.started), 0.0)
        try:
            return future.result(timeout=remaining)
        except FutureTimeoutError as exc:
            # A running HTTP call is not interrupted, only ignored.
            raise UpstreamError(
                f"no reply within {deadline:.1f}s",
                context={"timeout": True},
            ) from exc

    def _run_completion(self, future: Future, market_context: str) -> None:
        """Worker body: one completion call whose outcome lands in ``future``."""
        try:
            reply = self._client.issue(self._config.system_prompt, market_context)
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)
        else:
            future.set_result(reply)

    def _fail(
        self,
        lifecycle: _Lifecycle,
        status_code: int,
        reason: str,
        exc: BaseException,
    ) -> BridgeResponse:
        failed_in = lifecycle.state
        lifecycle.advance(RequestState.FAILED)
        logging.error(
            "[%s] Request failed in %s after %.2f ms: %s",
            lifecycle.request_id,
            failed_in.value,
            lifecycle.elapsed_ms(),
            exc,
        )
        decision = TradeDecision.hold(truncate(reason, REASON_LIMIT))
        return BridgeResponse(status_code, decision.to_response(), lifecycle.state, decision)
