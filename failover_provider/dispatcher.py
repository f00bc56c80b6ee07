"""Dispatcher: resolves member access against the active provider with failover.

Every attribute read on a failover composite lands in ``Dispatcher.resolve()``.
Plain values are returned straight from the active provider.  Callables
come back wrapped: invoking the wrapper calls the member on the provider
it was resolved from and, on a retryable failure, rotates the registry
and repeats the call with the same arguments on the next provider.

Synchronous failures, failing getters and failed awaitables all go
through the same loop.  Total attempts for one logical call never
exceed ``1 + retries``, and the caller always sees either a result or the
last provider exception, unwrapped.
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from failover_provider.core.config import FailoverConfig
from failover_provider.core.errors import TypeMismatchAcrossProvidersError
from failover_provider.registry import ProviderEntry, ProviderRegistry

logger = logging.getLogger(__name__)

# ── Data classes ────────────────────────────────────────────────────────


@dataclass
class _Attempt:
    """Mutable progress of one logical access.

    Attributes:
        name:         Member being accessed.
        entry:        Registry entry currently serving the access.
        member:       Value of ``name`` resolved on ``entry.provider``.
        retries_left: Remaining retry budget.
        failovers:    Number of rotations performed so far.
        started:      Monotonic start time of the in-flight invocation.
                      For a coroutine it is reset when ``_settle()`` first
                      awaits it.  Other awaitables (``Task``, ``Future``)
                      keep the call time, so latency for them includes any
                      delay before the caller awaits the wrapper.
        pending:      Whether the last invocation returned an awaitable.
    """

    name: str
    entry: ProviderEntry
    member: Any = None
    retries_left: int = 0
    failovers: int = 0
    started: float = 0.0
    pending: bool = False


# ── Dispatcher ──────────────────────────────────────────────────────────


class Dispatcher:
    """Failover-aware member dispatch over a ``ProviderRegistry``.

    Args:
        registry: Provider candidates and the shared active index.
        config:   Retry budget and retry predicate.
    """

    def __init__(self, registry: ProviderRegistry, config: FailoverConfig) -> None:
        self._registry = registry
        self._config = config

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def config(self) -> FailoverConfig:
        return self._config

    def resolve(self, name: str) -> Any:
        """Return member *name* of the active provider.

        Non-callable values are returned as they are.  Callables are
        returned as a wrapper that retries across providers when invoked.

        Raises:
            EmptyRegistryError: If no provider has been registered.
            Exception: The last lookup error when every permitted attempt
                to read *name* failed.
        """
        attempt = _Attempt(
            name=name,
            entry=self._registry.current_entry(),
            retries_left=self._config.retries,
        )
        self._locate(attempt)
        if not callable(attempt.member):
            return attempt.member
        return self._bind(attempt)

    # ── Resolution ──────────────────────────────────────────────────

    def _locate(self, attempt: _Attempt) -> None:
        """Read ``attempt.name`` from the serving provider, failing over on errors."""
        while True:
            try:
                attempt.member = getattr(attempt.entry.provider, attempt.name)
                return
            except Exception as exc:
                if not self._can_fail_over(attempt, exc):
                    raise
                failure = exc
            self._rotate(attempt, failure)

    def _bind(self, resolved: _Attempt) -> Callable[..., Any]:
        """Wrap a resolved callable so each invocation runs the failover loop."""
        name = resolved.name
        entry = resolved.entry
        member = resolved.member
        retries_left = resolved.retries_left
        failovers = resolved.failovers

        @functools.wraps(member)
        def invoke(*args: Any, **kwargs: Any) -> Any:
            attempt = _Attempt(
                name=name,
                entry=entry,
                member=member,
                retries_left=retries_left,
                failovers=failovers,
            )
            result = self._run(attempt, args, kwargs)
            if attempt.pending:
                return self._settle(attempt, result, args, kwargs)
            return result

        if inspect.iscoroutinefunction(member):
            inspect.markcoroutinefunction(invoke)
        return invoke

    # ── Invocation ──────────────────────────────────────────────────

    def _run(self, attempt: _Attempt, args: tuple, kwargs: dict) -> Any:
        """Invoke the member until it returns; the result may be an awaitable.

        Sets ``attempt.pending`` when the returned value still has to be
        awaited, in which case latency is recorded by ``_settle()``.
        """
        while True:
            if not callable(attempt.member):
                attempt.pending = False
                return self._mismatched(attempt)

            attempt.started = time.monotonic()
            try:
                result = attempt.member(*args, **kwargs)
            except Exception as exc:
                self._record_latency(attempt)
                if not self._can_fail_over(attempt, exc):
                    raise
                failure = exc
            else:
                attempt.pending = inspect.isawaitable(result)
                if not attempt.pending:
                    self._record_latency(attempt)
                    self._log_recovery(attempt)
                return result

            self._rotate(attempt, failure)
            self._locate(attempt)

    async def _settle(self, attempt: _Attempt, pending: Awaitable[Any], args: tuple, kwargs: dict) -> Any:
        """Await *pending*, re-invoking on the next provider when it fails."""
        while True:
            if inspect.iscoroutine(pending):
                attempt.started = time.monotonic()
            try:
                value = await pending
            except Exception as exc:
                self._record_latency(attempt)
                if not self._can_fail_over(attempt, exc):
                    raise
                failure = exc
            else:
                self._record_latency(attempt)
                self._log_recovery(attempt)
                return value

            self._rotate(attempt, failure)
            self._locate(attempt)
            pending = self._run(attempt, args, kwargs)
            if not attempt.pending:
                return pending

    def _mismatched(self, attempt: _Attempt) -> Any:
        """Handle a callable member that is a plain value on the failover provider."""
        if self._config.strict_member_types:
            raise TypeMismatchAcrossProvidersError(attempt.name, attempt.entry.id)
        logger.warning(
            "Member '%s' is not callable on provider %s, returning its value",
            attempt.name,
            attempt.entry.id,
        )
        return attempt.member

    # ── Failure handling ────────────────────────────────────────────

    def _can_fail_over(self, attempt: _Attempt, exc: Exception) -> bool:
        """Return whether *exc* may be retried on another provider."""
        if attempt.retries_left <= 0:
            logger.debug(
                "Retries exhausted for '%s' on provider %s: %s",
                attempt.name,
                attempt.entry.id,
                type(exc).__name__,
            )
            return False
        if not self._config.should_retry_on(exc):
            logger.debug(
                "Retry policy rejected %s from provider %s on '%s'",
                type(exc).__name__,
                attempt.entry.id,
                attempt.name,
            )
            return False
        return True

    def _rotate(self, attempt: _Attempt, exc: Exception) -> None:
        """Move *attempt* to the next provider and spend one retry."""
        failed = attempt.entry
        attempt.entry = self._registry.advance_if_still_active(failed.id)
        attempt.retries_left -= 1
        attempt.failovers += 1
        logger.warning(
            "Provider %s failed on '%s' (%s), failing over to %s (%d retries left)",
            failed.id,
            attempt.name,
            type(exc).__name__,
            attempt.entry.id,
            attempt.retries_left,
        )

    # ── Observability ───────────────────────────────────────────────

    def _record_latency(self, attempt: _Attempt) -> None:
        elapsed_ms = round((time.monotonic() - attempt.started) * 1000, 2)
        self._registry.record_latency(attempt.entry.id, elapsed_ms)
        logger.debug("Provider %s answered '%s' in %.2fms", attempt.entry.id, attempt.name, elapsed_ms)

    def _log_recovery(self, attempt: _Attempt) -> None:
        if attempt.failovers:
            logger.info(
                "'%s' succeeded on provider %s after %d failover(s)",
                attempt.name,
                attempt.entry.id,
                attempt.failovers,
            )
