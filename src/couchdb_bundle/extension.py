"""
Translate the ``doctrine_couchdb`` configuration into service definitions.

The ``client`` tree yields one connection service per configured connection,
plus an HTTP client registered with the shared data collector for each
connection that has logging enabled. The ``odm`` tree yields, per document
manager, a configuration service, a metadata driver chain, a metadata cache,
an event manager and the document manager itself.

Services reference each other by ids built from :class:`ServiceNames`, the same
templates used to register them.
"""

from typing import Iterable, Optional, Union

import structlog

from couchdb_bundle.cache import load_cache_driver
from couchdb_bundle.configuration import (
    BundleConfig,
    ClientConfig,
    DocumentManagerConfig,
    OdmConfig,
    process_configuration,
)
from couchdb_bundle.container import ContainerBuilder
from couchdb_bundle.domain import Definition
from couchdb_bundle.errors import AutoMappingError, InvalidConfigurationError
from couchdb_bundle.mapping_loader import resolve_document_manager_mappings
from couchdb_bundle.naming import ServiceNames, names as default_names, placeholder
from couchdb_bundle.resources import (
    HTTP_CLIENT_CLASS,
    load_client_services,
    load_odm_services,
)

__all__ = ["CouchDBExtension"]

logger = structlog.get_logger()

_PROXY_OPTIONS = ("auto_generate_proxy_classes", "proxy_dir", "proxy_namespace")


class CouchDBExtension:
    """Loads connections and document managers into a container."""

    alias = "doctrine_couchdb"

    def __init__(self, names: ServiceNames = default_names):
        self.names = names

    def load(self, configs: Union[list[dict], dict], container: ContainerBuilder) -> BundleConfig:
        """Process configuration fragments and register the resulting services.

        Args:
            configs: Configuration fragments, in load order.
            container: The container to populate.

        Returns:
            The processed configuration.

        Raises:
            InvalidConfigurationError: If the configuration does not match the schema.
            AutoMappingError: If ``auto_mapping`` is enabled while several document
                managers are configured.
            InvalidMappingError: If a mapping cannot be resolved.
        """
        debug = bool(container.get_parameter("kernel.debug")) if container.has_parameter("kernel.debug") else False
        config = process_configuration(configs, debug)

        default_connection = None
        if config.client is not None and config.client.connections:
            default_connection = self.client_load(config.client, container)

        if config.odm is not None and config.odm.document_managers:
            self.odm_load(config.odm, container, default_connection)

        logger.info(
            "extension.loaded",
            connections=len(config.client.connections) if config.client else 0,
            document_managers=len(config.odm.document_managers) if config.odm else 0,
        )
        return config

    # client

    def client_load(self, config: ClientConfig, container: ContainerBuilder) -> str:
        """Register every connection and return the default connection name."""
        names = self.names
        load_client_services(container, names)

        default_connection = config.default_connection or next(iter(config.connections))

        container.set_alias("couchdb_connection", names.connection(default_connection))
        container.set_parameter(
            names.parameter("connections"),
            {name: names.connection(name) for name in config.connections},
        )
        container.set_parameter(names.parameter("default_connection"), default_connection)

        for name, connection in config.connections.items():
            self.load_client_connection(name, connection.model_dump(), container)

        return default_connection

    def load_client_connection(self, name: str, connection: dict, container: ContainerBuilder) -> None:
        names = self.names
        connection_id = names.connection(name)
        (
            container.set_definition(connection_id, Definition.child_of(names.connection_parent))
            .set_arguments([connection])
            .set_public(True)
        )
        logger.debug("extension.connection_registered", connection=name, service_id=connection_id)

        if connection.get("logging") is not True:
            return

        http_client_id = names.http_client(name)
        (
            container.set_definition(http_client_id, Definition(HTTP_CLIENT_CLASS))
            .set_factory(names.reference(connection_id), "getHttpClient")
            .set_public(True)
        )
        container.get_definition(names.data_collector).add_method_call(
            "addLoggingClient", [names.reference(http_client_id), name]
        )
        logger.debug("extension.logging_client_registered", connection=name, service_id=http_client_id)

    # odm

    def odm_load(
        self, config: OdmConfig, container: ContainerBuilder, default_connection: Optional[str] = None
    ) -> None:
        names = self.names
        load_odm_services(container, names)

        document_managers = {name: names.document_manager(name) for name in config.document_managers}
        default_document_manager = config.default_document_manager or next(iter(document_managers))

        for parameter in (names.parameter, names.odm_parameter):
            container.set_parameter(parameter("document_managers"), document_managers)
            container.set_parameter(parameter("default_document_manager"), default_document_manager)

        for key in _PROXY_OPTIONS:
            container.set_parameter(names.odm_parameter(key), getattr(config, key))

        container.set_alias(
            names.odm_element("document_manager"), names.document_manager(default_document_manager)
        )

        for name, document_manager in config.document_managers.items():
            self.load_odm_document_manager(
                name, document_manager, container, document_managers, default_connection
            )

    def load_odm_document_manager(
        self,
        name: str,
        document_manager: DocumentManagerConfig,
        container: ContainerBuilder,
        document_managers: Iterable[str],
        default_connection: Optional[str] = None,
    ) -> None:
        names = self.names
        if document_manager.auto_mapping and len(list(document_managers)) > 1:
            raise AutoMappingError(
                'You cannot enable "auto_mapping" when several CouchDB document managers are defined.'
            )

        connection = document_manager.connection or default_connection
        if connection is None:
            raise InvalidConfigurationError(
                f'Document manager "{name}" has no connection and no default connection is configured.'
            )

        configuration_id = names.configuration(name)
        configuration = container.set_definition(
            configuration_id, Definition.child_of(names.configuration_parent)
        ).set_public(True)

        resolve_document_manager_mappings(name, document_manager, configuration, container, names)
        self.load_odm_document_manager_design_documents(document_manager, configuration)
        self.load_odm_cache_drivers(name, document_manager, container)

        methods = {
            "setMetadataCacheImpl": names.reference(names.metadata_cache(name)),
            "setMetadataDriverImpl": names.reference(names.metadata_driver(name)),
            "setProxyDir": placeholder(names.odm_parameter("proxy_dir")),
            "setProxyNamespace": placeholder(names.odm_parameter("proxy_namespace")),
            "setAutoGenerateProxyClasses": placeholder(names.odm_parameter("auto_generate_proxy_classes")),
        }
        for method, argument in methods.items():
            configuration.add_method_call(method, [argument])

        configuration.add_method_call("setAllOrNothingFlush", [document_manager.all_or_nothing_flush])

        container.set_definition(names.event_manager(name), Definition.child_of(names.event_manager_parent))

        (
            container.set_definition(
                names.document_manager(name), Definition.child_of(names.document_manager_parent)
            )
            .set_arguments(
                [
                    names.reference(names.connection(connection)),
                    names.reference(configuration_id),
                    names.reference(names.event_manager(name)),
                ]
            )
            .set_public(True)
        )
        logger.debug(
            "extension.document_manager_registered",
            document_manager=name,
            connection=connection,
            service_id=names.document_manager(name),
        )

    def load_odm_document_manager_design_documents(
        self, document_manager: DocumentManagerConfig, configuration: Definition
    ) -> None:
        """Register the design documents declared in the configuration."""
        for name, design_document in document_manager.design_documents.items():
            configuration.add_method_call(
                "addDesignDocument",
                [name, design_document.class_name, design_document.options],
            )

    def load_odm_cache_drivers(
        self, name: str, document_manager: DocumentManagerConfig, container: ContainerBuilder
    ) -> None:
        load_cache_driver(
            "metadata_cache", name, document_manager.metadata_cache_driver, container, self.names
        )
