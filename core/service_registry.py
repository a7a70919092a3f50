"""
Service Registry - Dependency Injection Container for CubeArena
"""

import logging
import inspect
from typing import TypeVar, Type, Dict, Any, Optional, Callable, Set
from enum import Enum
from dataclasses import dataclass

logger = logging.getLogger('arena.core.service_registry')

T = TypeVar('T')

class ServiceLifetime(Enum):
    """Service lifetime management options"""
    SINGLETON = "singleton"
    TRANSIENT = "transient"

class ServiceNotFound(Exception):
    """Raised when a requested service is not registered"""
    pass

class CircularDependencyError(Exception):
    """Raised when circular dependencies are detected"""
    pass

class ServiceConfigurationError(Exception):
    """Raised when service configuration is invalid"""
    pass

@dataclass
class ServiceDefinition:
    """Metadata for a registered service"""
    interface_type: Type
    implementation_type: Optional[Type]
    lifetime: ServiceLifetime
    factory: Optional[Callable] = None
    instance: Optional[Any] = None

class ServiceRegistry:
    """
    Dependency injection container for managing service instances.

    Constructor and factory parameters are resolved from their type
    annotations. Parameters with defaults are optional dependencies.

    Usage:
        registry = ServiceRegistry()
        registry.register(EventBus)
        registry.register(StateManager)
        state_manager = registry.get(StateManager)
    """

    def __init__(self):
        self._services: Dict[Type, ServiceDefinition] = {}
        self._resolving: Set[Type] = set()  # Circular dependency detection
        logger.info("ServiceRegistry initialized")

    def register(
        self,
        interface_type: Type[T],
        implementation_type: Optional[Type[T]] = None,
        lifetime: ServiceLifetime = ServiceLifetime.SINGLETON,
        factory: Optional[Callable[..., T]] = None
    ) -> 'ServiceRegistry':
        """
        Register a service with the container.

        Args:
            interface_type: The interface/abstract type to register
            implementation_type: The concrete implementation (if not using factory)
            lifetime: Service lifetime management
            factory: Optional factory function for complex construction

        Returns:
            Self for method chaining

        Raises:
            ServiceConfigurationError: If registration parameters are invalid
        """
        if implementation_type is None and factory is None:
            # Allow self-registration for concrete classes
            if not self._is_abstract(interface_type):
                implementation_type = interface_type
            else:
                raise ServiceConfigurationError(
                    f"Must provide implementation_type or factory for abstract type {interface_type}"
                )

        if implementation_type and factory:
            raise ServiceConfigurationError(
                "Cannot specify both implementation_type and factory"
            )

        if implementation_type and interface_type != implementation_type:
            if not issubclass(implementation_type, interface_type):
                raise ServiceConfigurationError(
                    f"{implementation_type} does not implement {interface_type}"
                )

        self._services[interface_type] = ServiceDefinition(
            interface_type=interface_type,
            implementation_type=implementation_type,
            lifetime=lifetime,
            factory=factory
        )

        target_name = "factory" if factory else implementation_type.__name__
        logger.info(
            f"Registered service: {interface_type.__name__} -> "
            f"{target_name} ({lifetime.value})"
        )

        return self

    def register_instance(self, interface_type: Type[T], instance: T) -> 'ServiceRegistry':
        """
        Register a pre-created instance as a singleton service.

        Returns:
            Self for method chaining
        """
        self._services[interface_type] = ServiceDefinition(
            interface_type=interface_type,
            implementation_type=type(instance),
            lifetime=ServiceLifetime.SINGLETON,
            instance=instance
        )

        logger.info(f"Registered instance: {interface_type.__name__}")
        return self

    def get(self, interface_type: Type[T]) -> T:
        """
        Resolve a service instance from the container.

        Raises:
            ServiceNotFound: If service is not registered
            CircularDependencyError: If circular dependencies detected
        """
        return self._resolve_service(interface_type)

    def is_registered(self, interface_type: Type[T]) -> bool:
        return interface_type in self._services

    def get_registered_services(self) -> Dict[Type, ServiceDefinition]:
        """Get all registered services (for debugging/monitoring)"""
        return self._services.copy()

    def _resolve_service(self, interface_type: Type[T]) -> T:
        """Internal service resolution with circular dependency detection"""

        if interface_type in self._resolving:
            dependency_chain = " -> ".join([t.__name__ for t in self._resolving])
            raise CircularDependencyError(
                f"Circular dependency detected: {dependency_chain} -> {interface_type.__name__}"
            )

        if interface_type not in self._services:
            raise ServiceNotFound(f"Service {interface_type.__name__} is not registered")

        service_def = self._services[interface_type]

        if (service_def.lifetime == ServiceLifetime.SINGLETON and
                service_def.instance is not None):
            return service_def.instance

        self._resolving.add(interface_type)

        try:
            if service_def.factory:
                instance = self._call_with_dependencies(service_def.factory)
            else:
                instance = self._call_with_dependencies(service_def.implementation_type)

            if service_def.lifetime == ServiceLifetime.SINGLETON:
                service_def.instance = instance

            logger.debug(f"Resolved service: {interface_type.__name__}")
            return instance

        finally:
            self._resolving.discard(interface_type)

    def _call_with_dependencies(self, target: Callable):
        """Call a class or factory, resolving annotated parameters"""
        if inspect.isclass(target):
            signature = inspect.signature(target.__init__)
        else:
            signature = inspect.signature(target)

        kwargs = {}
        for param_name, param in signature.parameters.items():
            if param_name == 'self' or param.annotation == inspect.Parameter.empty:
                continue

            if param.default != inspect.Parameter.empty:
                # Optional dependency: fall back to the default
                if self.is_registered(param.annotation):
                    kwargs[param_name] = self._resolve_service(param.annotation)
            else:
                kwargs[param_name] = self._resolve_service(param.annotation)

        return target(**kwargs)

    def _is_abstract(self, cls: Type) -> bool:
        """Check if a class is abstract"""
        return inspect.isabstract(cls)
