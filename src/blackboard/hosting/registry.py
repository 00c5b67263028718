"""Service registry and discovery.

Applications compose services around the calculation engine (storage,
notification, import/export...) without the engine knowing about them.
A ServiceRegistry maps a contract (a class) to zero or more registered
instances; discover_services() instantiates the factories published by
installed packages under the "blackboard.services" entry-point group.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from importlib.metadata import entry_points
from typing import Protocol, TypeVar, runtime_checkable

logger = logging.getLogger(__name__)

SERVICES_ENTRY_POINT_GROUP = "blackboard.services"

S = TypeVar("S", bound="Service")


class ServiceContractError(TypeError):
    """Raised when an instance does not implement the contract it is registered for."""

    def __init__(self, contract: type, instance: object) -> None:
        self.contract = contract
        self.instance = instance
        super().__init__(
            f"To be registered as service {type(instance).__name__} must implement/derive "
            f"from {contract.__name__}"
        )


class Context:
    """Composition root shared by every service of an application."""

    def __init__(self) -> None:
        self.services = ServiceRegistry()


class Service:
    """Base class for services; every service belongs to one Context."""

    def __init__(self, context: Context) -> None:
        if context is None:
            raise ValueError("Argument 'context' cannot be None.")
        self.context = context


@runtime_checkable
class ServiceFactory(Protocol):
    """Creates a service when it is available for a context."""

    def is_available(self, context: Context) -> bool: ...

    def create(self, context: Context) -> Service: ...


class ServiceRegistry:
    """Multi-map from contract to registered service instances.

    The same contract may have several providers; discover() returns them in
    registration order.
    """

    def __init__(self) -> None:
        self._services: dict[type, list[Service]] = {}

    def register(self, instance: Service, contract: type | None = None) -> None:
        """Register an instance for a contract (default: its own class).

        Raises:
            ServiceContractError: If the instance does not implement the contract.
        """
        if instance is None:
            raise ValueError("Argument 'instance' cannot be None.")

        contract = contract or type(instance)
        if not isinstance(instance, contract):
            raise ServiceContractError(contract, instance)

        self._services.setdefault(contract, []).append(instance)
        logger.info("Registered service %s for %s", type(instance).__name__, contract.__name__)

    def deregister(self, instance: Service, contract: type | None = None) -> bool:
        """Remove a registration. Returns False if it was not registered."""
        if instance is None:
            raise ValueError("Argument 'instance' cannot be None.")

        contract = contract or type(instance)
        if not isinstance(instance, contract):
            raise ServiceContractError(contract, instance)

        providers = self._services.get(contract, [])
        for index, registered in enumerate(providers):
            if registered is instance:
                del providers[index]
                if not providers:
                    del self._services[contract]
                logger.info("Deregistered service %s from %s", type(instance).__name__, contract.__name__)
                return True
        return False

    def discover(self, contract: type[S]) -> list[S]:
        """Return every instance registered for the contract (possibly none)."""
        if contract is None:
            raise ValueError("Argument 'contract' cannot be None.")
        return list(self._services.get(contract, []))  # type: ignore[arg-type]


def _load_factories() -> list[ServiceFactory]:
    factories: list[ServiceFactory] = []
    for entry_point in entry_points(group=SERVICES_ENTRY_POINT_GROUP):
        loaded = entry_point.load()
        factory = loaded() if isinstance(loaded, type) else loaded
        if not isinstance(factory, ServiceFactory):
            logger.warning("Entry point %s is not a service factory, ignored", entry_point.name)
            continue
        factories.append(factory)
    return factories


def discover_services(
    context: Context, factories: Iterable[ServiceFactory] | None = None
) -> list[Service]:
    """Create the services whose factories are available for the context.

    Args:
        context: Context passed to every factory.
        factories: Factories to consider; defaults to those published under
            the "blackboard.services" entry-point group.
    """
    if context is None:
        raise ValueError("Argument 'context' cannot be None.")

    candidates = list(factories) if factories is not None else _load_factories()
    services = [factory.create(context) for factory in candidates if factory.is_available(context)]
    logger.info("Discovered %d service(s) from %d factory(ies)", len(services), len(candidates))
    return services
