"""Settings and failover policy.

``Settings`` reads process-wide defaults from environment variables with
the ``FAILOVER_`` prefix.  ``FailoverConfig`` is the immutable policy a
single ``FailoverProvider`` runs with.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


def default_should_retry_on(error: BaseException) -> bool:
    """Retry on any ordinary exception."""
    return isinstance(error, Exception)


class Settings(BaseSettings):
    """Failover defaults.

    All fields can be overridden by environment variables prefixed with
    ``FAILOVER_``.  For example, ``FAILOVER_RETRIES=5`` raises the default
    retry budget.
    """

    # ── Retry budget ────────────────────────────────────────────────
    RETRIES: int = Field(default=3, ge=0)  # Additional attempts after the first

    # ── Heterogeneous providers ─────────────────────────────────────
    STRICT_MEMBER_TYPES: bool = False  # Raise instead of returning a non-callable on failover

    model_config = {
        "env_prefix": "FAILOVER_",
    }


class FailoverConfig(BaseModel):
    """Retry policy for one failover composite.

    Attributes:
        retries:             Additional attempts allowed after the first one.
                             Total attempts per logical call = ``1 + retries``.
                             When ``retries`` exceeds the number of providers
                             the rotation wraps and revisits failed providers.
        should_retry_on:     Predicate deciding whether an exception is
                             retryable.  Returning ``False`` propagates the
                             exception immediately.
        strict_member_types: When ``True``, a callable member that resolves to
                             a plain value on the failover provider raises
                             ``TypeMismatchAcrossProvidersError`` instead of
                             returning that value.
    """

    model_config = ConfigDict(frozen=True)

    retries: int = Field(default=3, ge=0)
    should_retry_on: Callable[[BaseException], bool] = default_should_retry_on
    strict_member_types: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> FailoverConfig:
        """Build a config from *settings*, letting explicit *overrides* win.

        ``None`` overrides are ignored so callers can pass optional
        keyword arguments straight through.
        """
        values: dict[str, Any] = {
            "retries": settings.RETRIES,
            "strict_member_types": settings.STRICT_MEMBER_TYPES,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
