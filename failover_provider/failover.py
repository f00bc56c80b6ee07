"""FailoverProvider: builds a composite object that fails over between providers.

Usage::

    client = (
        FailoverProvider(retries=2)
        .add_provider(PrimaryClient())
        .add_provider(BackupClient())
        .initialize()
    )
    balance = await client.get_balance(address)

The composite passes ``isinstance`` checks for the first provider's class
and forwards every attribute read through ``Dispatcher``.  Protocol
methods the first provider's class defines (``with``, ``async with``,
calls, ``len()``, indexing, iteration) are forwarded the same way.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar, cast

from failover_provider.core.config import FailoverConfig, Settings
from failover_provider.core.errors import EmptyRegistryError
from failover_provider.dispatcher import Dispatcher
from failover_provider.registry import ProviderRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Protocol methods Python looks up on the type rather than the instance.
_PROTOCOL_METHODS = (
    "__call__",
    "__enter__",
    "__exit__",
    "__aenter__",
    "__aexit__",
    "__iter__",
    "__next__",
    "__aiter__",
    "__anext__",
    "__len__",
    "__bool__",
    "__getitem__",
    "__setitem__",
    "__delitem__",
    "__contains__",
)

# Protocol methods whose result is commonly the provider itself.
_SELF_RETURNING = frozenset({"__enter__", "__aenter__", "__iter__", "__aiter__"})


class FailoverComposite:
    """Stand-in object that delegates every attribute to the active provider.

    Plain attribute reads go through ``__getattr__``.  Protocol methods
    (``with``, ``async with``, calls, ``len()``, ``[]``, iteration) are
    looked up on the type by Python, so ``initialize()`` returns a subclass
    carrying a forwarder for each one the first provider's class defines.
    Other dunder names are never forwarded.
    """

    __slots__ = ("_failover_dispatcher", "_failover_type")

    def __init__(self, dispatcher: Dispatcher, provider_type: type) -> None:
        object.__setattr__(self, "_failover_dispatcher", dispatcher)
        object.__setattr__(self, "_failover_type", provider_type)

    def _failover_active(self) -> Any:
        dispatcher = object.__getattribute__(self, "_failover_dispatcher")
        return dispatcher.registry.current_entry().provider

    def _failover_class(self) -> type:
        return object.__getattribute__(self, "_failover_type")

    def _failover_unwrap(self, result: Any) -> Any:
        dispatcher = object.__getattribute__(self, "_failover_dispatcher")
        if any(result is entry.provider for entry in dispatcher.registry.entries):
            return self
        return result

    async def _failover_unwrap_async(self, pending: Awaitable[Any]) -> Any:
        return self._failover_unwrap(await pending)

    __class__ = property(_failover_class)  # type: ignore[assignment]

    def __getattr__(self, name: str) -> Any:
        # Optional hooks such as __deepcopy__ are looked up by copy and pickle.
        # A missing one is not a provider failure.
        if name.startswith("__") and name.endswith("__"):
            raise AttributeError(name)
        return object.__getattribute__(self, "_failover_dispatcher").resolve(name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._failover_active(), name, value)

    def __delattr__(self, name: str) -> None:
        delattr(self._failover_active(), name)

    def __dir__(self) -> list[str]:
        return dir(self._failover_active())

    def __repr__(self) -> str:
        dispatcher = object.__getattribute__(self, "_failover_dispatcher")
        return f"<FailoverComposite active={self._failover_active()!r} providers={len(dispatcher.registry)}>"


def _protocol_forwarder(name: str) -> Callable[..., Any]:
    def forward(self: FailoverComposite, *args: Any, **kwargs: Any) -> Any:
        dispatcher = object.__getattribute__(self, "_failover_dispatcher")
        result = dispatcher.resolve(name)(*args, **kwargs)
        if name not in _SELF_RETURNING:
            return result
        if inspect.isawaitable(result):
            return self._failover_unwrap_async(result)
        return self._failover_unwrap(result)

    forward.__name__ = name
    forward.__qualname__ = f"FailoverComposite.{name}"
    return forward


def _defines(provider_type: type, name: str) -> bool:
    for klass in provider_type.__mro__:
        if name in vars(klass):
            return vars(klass)[name] is not None
    return False


@functools.cache
def composite_type(provider_type: type) -> type[FailoverComposite]:
    """Return the composite class matching the protocols of *provider_type*."""
    forwarded = [name for name in _PROTOCOL_METHODS if _defines(provider_type, name)]
    if not forwarded:
        return FailoverComposite
    namespace: dict[str, Any] = {"__slots__": ()}
    namespace.update({name: _protocol_forwarder(name) for name in forwarded})
    return type(f"FailoverComposite[{provider_type.__name__}]", (FailoverComposite,), namespace)


class FailoverProvider(Generic[T]):
    """Failover factory.

    Register candidates with ``add_provider()`` then call ``initialize()``
    to get the failover-enabled object.

    Args:
        config:              Complete policy.  When omitted it is built from
                             ``Settings`` (``FAILOVER_*`` environment variables).
        retries:             Additional attempts after the first failure.
                             ``retries=3`` with four providers tries each one
                             once; larger values wrap around round-robin.
        should_retry_on:     Predicate over the raised exception.  Default:
                             any ``Exception``.
        strict_member_types: Raise ``TypeMismatchAcrossProvidersError`` when a
                             failover provider exposes a plain value where the
                             failed one had a callable.

    Raises:
        pydantic.ValidationError: If the options are invalid (e.g. negative
            retries).

    Note:
        A missing attribute is a provider failure like any other, so
        ``hasattr(composite, "optional_feature")`` on a provider without
        that feature moves the active provider on.  Test for optional
        members on ``factory.registry.current_entry().provider`` instead.
    """

    def __init__(
        self,
        config: FailoverConfig | None = None,
        *,
        retries: int | None = None,
        should_retry_on: Callable[[BaseException], bool] | None = None,
        strict_member_types: bool | None = None,
    ) -> None:
        overrides = {
            "retries": retries,
            "should_retry_on": should_retry_on,
            "strict_member_types": strict_member_types,
        }
        if config is None:
            config = FailoverConfig.from_settings(Settings(), **overrides)
        else:
            explicit = {key: value for key, value in overrides.items() if value is not None}
            if explicit:
                config = FailoverConfig(**{**dict(config), **explicit})

        self._config = config
        self._registry: ProviderRegistry[T] = ProviderRegistry()
        self._dispatcher = Dispatcher(self._registry, self._config)

    @property
    def config(self) -> FailoverConfig:
        return self._config

    @property
    def registry(self) -> ProviderRegistry[T]:
        return self._registry

    def add_provider(self, provider: T) -> FailoverProvider[T]:
        """Add *provider* to the list of candidates and return ``self``."""
        provider_id = self._registry.register(provider)
        logger.debug("Registered provider %s (%s)", provider_id, type(provider).__name__)
        return self

    def initialize(self) -> T:
        """Return the failover-enabled object.

        Raises:
            EmptyRegistryError: If ``add_provider()`` was never called.
        """
        if not len(self._registry):
            raise EmptyRegistryError()

        first = self._registry.entries[0].provider
        logger.debug(
            "Failover composite initialized over %d provider(s) with %d retries",
            len(self._registry),
            self._config.retries,
        )
        return cast(T, composite_type(type(first))(self._dispatcher, type(first)))
