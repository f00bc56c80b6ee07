"""Transparent failover across interchangeable provider objects.

Register providers with ``FailoverProvider.add_provider()`` and call
``initialize()`` to obtain one object with the first provider's surface
whose every member access fails over between providers.
"""

from failover_provider.core.config import FailoverConfig, Settings, default_should_retry_on
from failover_provider.core.errors import (
    EmptyRegistryError,
    FailoverError,
    TypeMismatchAcrossProvidersError,
)
from failover_provider.dispatcher import Dispatcher
from failover_provider.failover import FailoverComposite, FailoverProvider
from failover_provider.registry import ProviderEntry, ProviderRegistry, uid

__version__ = "0.1.0"

__all__ = [
    "Dispatcher",
    "EmptyRegistryError",
    "FailoverComposite",
    "FailoverConfig",
    "FailoverError",
    "FailoverProvider",
    "ProviderEntry",
    "ProviderRegistry",
    "Settings",
    "TypeMismatchAcrossProvidersError",
    "default_should_retry_on",
    "uid",
]
