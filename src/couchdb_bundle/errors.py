"""Exceptions raised while loading configuration and compiling the service graph."""

from typing import Optional

__all__ = [
    "BundleError",
    "ConfigurationError",
    "InvalidConfigurationError",
    "InvalidMappingError",
    "AutoMappingError",
    "ContainerError",
    "ServiceNotFoundError",
    "ParameterNotFoundError",
    "CircularReferenceError",
]


class BundleError(Exception):
    """Base class for every error raised by this package."""

    pass


class ConfigurationError(BundleError):
    """Raised when the configuration tree cannot be turned into services."""

    pass


class InvalidConfigurationError(ConfigurationError):
    """Raised when a configuration fragment does not match the schema."""

    pass


class InvalidMappingError(ConfigurationError):
    """Raised when a document mapping points at a missing bundle or directory."""

    pass


class AutoMappingError(ConfigurationError):
    """Raised when auto mapping is enabled alongside several document managers."""

    pass


class ContainerError(BundleError):
    """Raised when the service registry is asked for something it cannot provide."""

    pass


class ServiceNotFoundError(ContainerError, KeyError):
    """Raised when a service id or reference names no definition or alias."""

    def __init__(self, service_id: str, referenced_by: Optional[str] = None):
        self.service_id = service_id
        self.referenced_by = referenced_by
        if referenced_by:
            message = f"Service '{referenced_by}' references non-existent service '{service_id}'"
        else:
            message = f"Service '{service_id}' does not exist"
        super().__init__(message)

    def __str__(self):
        return self.args[0]


class ParameterNotFoundError(ContainerError, KeyError):
    """Raised when a parameter, or a %placeholder% naming one, is not set."""

    def __init__(self, message: str):
        super().__init__(message)

    def __str__(self):
        return self.args[0]


class CircularReferenceError(ContainerError):
    """Raised when constructor or factory dependencies form a cycle."""

    pass
