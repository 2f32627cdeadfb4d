"""Metadata cache driver definitions."""

import base64
import hashlib

import structlog

from couchdb_bundle.configuration import CacheDriverConfig
from couchdb_bundle.container import ContainerBuilder
from couchdb_bundle.domain import Alias, Definition
from couchdb_bundle.errors import InvalidConfigurationError
from couchdb_bundle.mapping_loader import MAPPING_RESOURCE_EXTENSION
from couchdb_bundle.naming import ServiceId, ServiceNames, placeholder

__all__ = ["load_cache_driver", "cache_namespace"]

logger = structlog.get_logger()

_SIMPLE_CACHE_TYPES = ("apc", "apcu", "array", "xcache", "wincache", "zenddata")

# cache type -> (method injecting the instance, method configuring the server)
_SERVER_CACHE_TYPES = {
    "memcache": ("setMemcache", "addServer"),
    "memcached": ("setMemcached", "addServer"),
    "redis": ("setRedis", "connect"),
}


def load_cache_driver(
    cache_name: str,
    manager_name: str,
    cache_driver: CacheDriverConfig,
    container: ContainerBuilder,
    names: ServiceNames,
) -> ServiceId:
    """Register the cache service ``<prefix>.odm.<manager>_<cache_name>``.

    Args:
        cache_name: The cache role, e.g. ``metadata_cache``.
        manager_name: The document manager owning the cache.
        cache_driver: The configured driver.
        container: The container being loaded.
        names: Naming templates for service ids.

    Returns:
        The id of the registered cache service (or alias, for ``service``).

    Raises:
        InvalidConfigurationError: If the driver type is not recognised.
    """
    service_id = names.cache(manager_name, cache_name)
    driver_type = cache_driver.type

    if driver_type == "service":
        if not cache_driver.id:
            raise InvalidConfigurationError(
                f'The "service" cache driver of document manager "{manager_name}" requires an "id".'
            )
        container.set_alias(service_id, Alias(cache_driver.id, public=False))
        logger.debug("cache.aliased", service_id=service_id, target=cache_driver.id)
        return service_id

    if driver_type in _SERVER_CACHE_TYPES:
        inject_method, server_method = _SERVER_CACHE_TYPES[driver_type]
        cache = Definition(
            cache_driver.class_name
            or placeholder(names.class_parameter(f"odm.cache.{driver_type}"))
        )
        instance = Definition(
            cache_driver.instance_class
            or placeholder(names.class_parameter(f"odm.cache.{driver_type}_instance"))
        )
        instance.add_method_call(
            server_method,
            [
                cache_driver.host or placeholder(names.odm_parameter(f"cache.{driver_type}_host")),
                cache_driver.port or placeholder(names.odm_parameter(f"cache.{driver_type}_port")),
            ],
        )
        instance_id = names.cache_instance(manager_name, driver_type)
        container.set_definition(instance_id, instance)
        cache.add_method_call(inject_method, [names.reference(instance_id)])
    elif driver_type in _SIMPLE_CACHE_TYPES:
        cache = Definition(
            cache_driver.class_name
            or placeholder(names.class_parameter(f"odm.cache.{driver_type}"))
        )
    else:
        raise InvalidConfigurationError(f'"{driver_type}" is an unrecognized cache driver.')

    cache.set_public(False)
    cache.add_method_call(
        "setNamespace",
        [cache_driver.namespace or cache_namespace(manager_name, container)],
    )
    container.set_definition(service_id, cache)
    logger.debug("cache.registered", service_id=service_id, type=driver_type)
    return service_id


def cache_namespace(manager_name: str, container: ContainerBuilder) -> str:
    """Generate a cache namespace unique to this application and manager.

    The seed is ``cache.prefix.seed`` when set, the project directory otherwise,
    followed by the container class.
    """
    if container.has_parameter("cache.prefix.seed"):
        seed = "." + str(container.resolve_value(container.get_parameter("cache.prefix.seed")))
    else:
        seed = "_" + str(_parameter(container, "kernel.project_dir"))
    seed += "." + str(_parameter(container, "kernel.container_class"))
    return f"sf_{MAPPING_RESOURCE_EXTENSION}_{manager_name}_{_hash(seed)}"


def _hash(value: str) -> str:
    digest = base64.b64encode(hashlib.sha256(value.encode("utf-8")).digest()).decode("ascii")
    return digest.translate(str.maketrans("/+", "._")).rstrip("=")


def _parameter(container: ContainerBuilder, name: str) -> str:
    return container.get_parameter(name) if container.has_parameter(name) else ""
