"""Configuration schema for the ``client`` and ``odm`` trees.

Configuration arrives as one or more plain mappings (for example one per
configuration file). :func:`process_configuration` merges them, applies the
shorthand forms, validates the result against the pydantic models below and
returns a :class:`BundleConfig`.

Shorthands accepted before validation:
    - A ``client`` tree without ``connections`` describes a single connection
      named after ``default_connection`` (or ``default``).
    - An ``odm`` tree without ``document_managers`` describes a single manager
      named after ``default_document_manager`` (or ``default``).
    - ``metadata_cache_driver: redis`` is short for ``{type: redis}``.
    - A mapping given as ``null`` means ``{mapping: true}`` and a mapping given
      as a string is short for ``{type: <string>}``.
"""

import copy
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from couchdb_bundle.errors import InvalidConfigurationError

__all__ = [
    "ConnectionConfig",
    "ClientConfig",
    "CacheDriverConfig",
    "MappingConfig",
    "DesignDocumentConfig",
    "DocumentManagerConfig",
    "OdmConfig",
    "BundleConfig",
    "process_configuration",
    "merge_configs",
]

_CLIENT_KEYS = {"default_connection", "connections"}
_ODM_KEYS = {
    "default_document_manager",
    "document_managers",
    "auto_generate_proxy_classes",
    "proxy_dir",
    "proxy_namespace",
}


class _Node(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ConnectionConfig(_Node):
    """Settings handed to the CouchDB client factory for one connection."""

    dbname: str
    host: str = "localhost"
    port: int = 5984
    user: Optional[str] = None
    password: Optional[str] = None
    ip: Optional[str] = None
    ssl: bool = False
    type: str = "socket"
    timeout: Optional[float] = None
    logging: bool = False


class ClientConfig(_Node):
    default_connection: Optional[str] = None
    connections: dict[str, ConnectionConfig] = Field(default_factory=dict)


class CacheDriverConfig(_Node):
    type: str = "array"
    host: Optional[str] = None
    port: Optional[int] = None
    instance_class: Optional[str] = None
    class_name: Optional[str] = Field(default=None, alias="class")
    id: Optional[str] = None
    namespace: Optional[str] = None


class MappingConfig(_Node):
    """Where the metadata for one namespace prefix comes from.

    Unset ``type``, ``dir`` and ``prefix`` are filled in from the bundle layout
    when the mapping names a bundle.
    """

    mapping: bool = True
    type: Optional[str] = None
    dir: Optional[str] = None
    prefix: Optional[str] = None
    alias: Optional[str] = None
    is_bundle: Optional[bool] = None


class DesignDocumentConfig(_Node):
    class_name: str = Field(alias="className")
    options: dict[str, Any] = Field(default_factory=dict)


class DocumentManagerConfig(_Node):
    connection: Optional[str] = None
    auto_mapping: bool = False
    all_or_nothing_flush: bool = True
    metadata_cache_driver: CacheDriverConfig = Field(default_factory=CacheDriverConfig)
    mappings: dict[str, MappingConfig] = Field(default_factory=dict)
    design_documents: dict[str, DesignDocumentConfig] = Field(default_factory=dict)

    @field_validator("metadata_cache_driver", mode="before")
    @classmethod
    def _cache_driver_shorthand(cls, value):
        if isinstance(value, str):
            return {"type": value}
        return value

    @field_validator("mappings", mode="before")
    @classmethod
    def _mapping_shorthand(cls, value):
        if not isinstance(value, dict):
            return value
        mappings = {}
        for name, mapping in value.items():
            if mapping is None:
                mapping = {}
            elif isinstance(mapping, str):
                mapping = {"type": mapping}
            mappings[name] = mapping
        return mappings


class OdmConfig(_Node):
    default_document_manager: Optional[str] = None
    auto_generate_proxy_classes: bool = False
    proxy_dir: str = "%kernel.cache_dir%/doctrine/CouchDBProxies"
    proxy_namespace: str = "CouchDBProxies"
    document_managers: dict[str, DocumentManagerConfig] = Field(default_factory=dict)


class BundleConfig(_Node):
    client: Optional[ClientConfig] = None
    odm: Optional[OdmConfig] = None


def merge_configs(configs: list[dict]) -> dict:
    """Deep-merge configuration fragments; later fragments win on scalar keys."""
    merged: dict = {}
    for config in configs:
        if config:
            merged = _merge(merged, config)
    return merged


def _merge(base: Any, override: Any) -> Any:
    if isinstance(base, dict) and isinstance(override, dict):
        result = dict(base)
        for key, value in override.items():
            result[key] = _merge(base[key], value) if key in base else copy.deepcopy(value)
        return result
    return copy.deepcopy(override)


def _normalise_client(client: dict, debug: bool) -> dict:
    if not isinstance(client, dict):
        return client
    client = dict(client)
    if "connections" not in client:
        connection = {k: v for k, v in client.items() if k not in _CLIENT_KEYS}
        name = client.get("default_connection") or "default"
        client = {k: v for k, v in client.items() if k in _CLIENT_KEYS}
        client["default_connection"] = name
        client["connections"] = {name: connection}

    connections = {}
    for name, connection in (client.get("connections") or {}).items():
        if isinstance(connection, dict) or connection is None:
            connection = dict(connection or {})
            connection.setdefault("logging", debug)
        connections[name] = connection
    client["connections"] = connections
    return client


def _normalise_odm(odm: dict) -> dict:
    if not isinstance(odm, dict):
        return odm
    odm = dict(odm)
    if "document_managers" not in odm:
        manager = {k: v for k, v in odm.items() if k not in _ODM_KEYS}
        name = odm.get("default_document_manager") or "default"
        odm = {k: v for k, v in odm.items() if k in _ODM_KEYS}
        odm["default_document_manager"] = name
        odm["document_managers"] = {name: manager}
    odm["document_managers"] = {
        name: manager or {} for name, manager in (odm.get("document_managers") or {}).items()
    }
    return odm


def process_configuration(
    configs: Union[list[dict], dict], debug: bool = False
) -> BundleConfig:
    """Merge, normalise and validate configuration fragments.

    Args:
        configs: One configuration mapping or a list of them, in load order.
        debug: The kernel debug flag; it is the default of each connection's
            ``logging`` setting.

    Returns:
        The validated :class:`BundleConfig`. Sub-trees that are absent or empty
        are ``None``.

    Raises:
        InvalidConfigurationError: If the merged tree does not match the schema.
    """
    if isinstance(configs, dict):
        configs = [configs]
    merged = merge_configs(configs)

    tree: dict = {}
    for key, value in merged.items():
        if key == "client":
            if value:
                tree["client"] = _normalise_client(value, debug)
        elif key == "odm":
            if value:
                tree["odm"] = _normalise_odm(value)
        else:
            tree[key] = value

    try:
        return BundleConfig.model_validate(tree)
    except ValidationError as exc:
        raise InvalidConfigurationError(f"Invalid configuration for 'doctrine_couchdb': {exc}") from exc
