"""Failover error types.

Only configuration problems get a dedicated exception type.  Errors
raised by providers themselves are never wrapped: once retries are
exhausted (or the retry policy declines) the composite re-raises the
provider's own exception verbatim.
"""


class FailoverError(Exception):
    """Base exception for errors raised by the failover layer itself."""


class EmptyRegistryError(FailoverError):
    """Raised when a composite is requested before any provider was added."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        msg = "Cannot initialize an empty provider. Call `add_provider` before this function."
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class TypeMismatchAcrossProvidersError(FailoverError):
    """Raised in strict mode when a failover provider exposes a different member shape.

    Attributes:
        member:      Name of the member that was being called.
        provider_id: Registry id of the provider whose member is not callable.
    """

    def __init__(self, member: str, provider_id: str) -> None:
        self.member = member
        self.provider_id = provider_id
        super().__init__(f"Member '{member}' is callable on the failed provider but not on provider '{provider_id}'")
