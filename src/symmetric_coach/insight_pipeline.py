"""Insight gating and generation for a live working set.

Per invocation the pipeline either stays silent, synthesizes a deterministic
fallback, or asks the generation service for a message under a hard 600 ms
ceiling. It never raises except to report that the caller cancelled.

Cancellation has two independent sources:
  - the caller's CancellationToken → InsightCancelledError, always propagated
  - the internal response ceiling → converted into a fallback(reason="timeout")
Both are torn down on every exit path of the network step.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from .cancellation import CancellationToken, InsightCancelledError
from .config import Config
from .generation_client import GenerationClient, GenerationError, build_generation_client
from .insight_fallback import build_fallback
from .insight_models import Insight, InsightContext
from .insight_parsing import extract_text, normalize_model_response, parse_model_response
from .insight_policy import SessionState, evaluate_policy
from .insight_prompt import build_prompt
from .metrics import (
    record_cancellation,
    record_evaluation,
    record_generation_call,
    record_insight,
)

logger = logging.getLogger(__name__)

RESPONSE_CEILING_SEC = 0.6

EventLogger = Callable[[str, dict[str, Any]], None]

_UNRESOLVED: Any = object()


def log_event(event: str, payload: dict[str, Any]) -> None:
    """Default event sink: one structured log line per pipeline event."""
    logger.info(event, extra={"coach_event": event, "coach_payload": payload})


async def _invoke(client: GenerationClient, prompt: str) -> Any:
    return await client.generate(prompt)


class InsightPipeline:
    def __init__(
        self,
        *,
        client: GenerationClient | None = _UNRESOLVED,
        now: Callable[[], float] | None = None,
        logger: EventLogger | None = None,
        config: Config | None = None,
    ) -> None:
        self._client = client
        self._now = now or time.monotonic
        self._log = logger or log_event
        self._config = config
        self._session = SessionState()

    @property
    def session(self) -> SessionState:
        return self._session

    @property
    def last_insight_at(self) -> float:
        return self._session.last_insight_at

    @property
    def insights_this_set(self) -> int:
        return self._session.insights_this_set

    def reset_for_new_set(self) -> None:
        self._session = SessionState()

    def _resolve_client(self) -> GenerationClient | None:
        if self._client is _UNRESOLVED:
            self._client = build_generation_client(self._config or Config.from_env())
        return self._client

    async def aclose(self) -> None:
        closer = getattr(self._client, "aclose", None)
        if self._client is not _UNRESOLVED and closer is not None:
            await closer()

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        try:
            self._log(event, payload)
        except Exception:
            logger.exception("Insight event sink failed for %s", event)

    def _raise_if_cancelled(self, cancellation: CancellationToken | None) -> None:
        if cancellation is not None and cancellation.cancelled:
            record_cancellation()
            raise InsightCancelledError()

    async def generate_insight(
        self,
        context: InsightContext,
        trigger: str,
        *,
        cancellation: CancellationToken | None = None,
    ) -> Insight | None:
        self._raise_if_cancelled(cancellation)

        now = self._now()
        decision = evaluate_policy(context, self._session, now)
        record_evaluation(decision.action)
        self._emit("coach_insight_evaluated", {
            "trigger": trigger,
            "action": decision.action,
            "reason": decision.reason,
            "phase": context.phase,
            "confidence": context.confidence,
            "insights_this_set": self._session.insights_this_set,
        })

        if decision.action == "skip":
            return None

        reason: str | None = decision.reason
        if decision.action == "fallback":
            self._raise_if_cancelled(cancellation)
            insight = build_fallback(context, reason or "error")
        else:
            insight, reason = await self._generate(context, cancellation)

        return self._commit(insight, context, now, reason)

    def _commit(
        self,
        insight: Insight,
        context: InsightContext,
        now: float,
        reason: str | None,
    ) -> Insight | None:
        # Overlapping calls: re-check the per-set budget against what other
        # calls committed while this one was waiting on the service.
        session = self._session
        if (
            session.insights_this_set >= context.limits.max_messages_per_set
            or now - session.last_insight_at < context.limits.speak_min_gap_sec
        ):
            self._emit("coach_insight_superseded", {
                "phase": context.phase,
                "source": insight.source,
                "insights_this_set": session.insights_this_set,
            })
            return None

        self._session = SessionState(
            last_insight_at=now,
            insights_this_set=session.insights_this_set + 1,
            last_phase=context.phase,
            last_reason=reason,
        )
        record_insight(insight.source, reason)
        return insight

    async def _generate(
        self,
        context: InsightContext,
        cancellation: CancellationToken | None,
    ) -> tuple[Insight, str | None]:
        started = time.perf_counter()
        try:
            payload = await self._call_with_ceiling(build_prompt(context), cancellation)
        except InsightCancelledError:
            record_cancellation()
            raise
        except Exception as exc:
            if cancellation is not None and cancellation.cancelled:
                record_cancellation()
                raise InsightCancelledError() from exc

            duration_ms = (time.perf_counter() - started) * 1000
            timed_out = isinstance(exc, GenerationError) and exc.code == "timeout"
            record_generation_call(duration_ms, "timeout" if timed_out else "failure")
            logger.warning(
                "Insight generation failed, using fallback: %s",
                exc,
                extra={"coach_duration_ms": round(duration_ms, 1)},
            )
            reason = "timeout" if timed_out else "error"
            return build_fallback(context, reason), reason

        record_generation_call((time.perf_counter() - started) * 1000, "success")

        parsed = parse_model_response(extract_text(payload))
        if parsed is None:
            logger.warning("Generation response unusable, using fallback")
            return build_fallback(context, "error"), "error"
        return normalize_model_response(parsed, context), None

    async def _call_with_ceiling(
        self,
        prompt: str,
        cancellation: CancellationToken | None,
    ) -> Any:
        client = self._resolve_client()
        if client is None:
            raise GenerationError(code="unavailable", message="generation client unavailable")
        if cancellation is not None:
            cancellation.raise_if_cancelled()

        call = asyncio.ensure_future(_invoke(client, prompt))
        cancel_wait = (
            asyncio.ensure_future(cancellation.wait()) if cancellation is not None else None
        )
        waiters = {call} if cancel_wait is None else {call, cancel_wait}
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=RESPONSE_CEILING_SEC,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if cancel_wait is not None and cancel_wait in done:
                raise InsightCancelledError()
            if call not in done:
                raise GenerationError(
                    code="timeout",
                    message=f"no response within {RESPONSE_CEILING_SEC * 1000:.0f}ms",
                )
            try:
                return call.result()
            except (asyncio.CancelledError, InsightCancelledError) as exc:
                raise InsightCancelledError() from exc
        finally:
            for task in (call, cancel_wait):
                if task is None:
                    continue
                if not task.done():
                    task.cancel()
                elif not task.cancelled():
                    # Mark the outcome retrieved so asyncio does not warn on GC.
                    task.exception()
