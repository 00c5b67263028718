"""Service registry and discovery for applications built on the engine."""

from blackboard.hosting.registry import (
    SERVICES_ENTRY_POINT_GROUP,
    Context,
    Service,
    ServiceContractError,
    ServiceFactory,
    ServiceRegistry,
    discover_services,
)

__all__ = [
    "SERVICES_ENTRY_POINT_GROUP",
    "Context",
    "Service",
    "ServiceContractError",
    "ServiceFactory",
    "ServiceRegistry",
    "discover_services",
]
