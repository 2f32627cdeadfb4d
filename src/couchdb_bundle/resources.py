"""Base service definitions shared by every connection and document manager.

The CouchDB client, HTTP client and ODM classes live in external libraries and
are only ever named here, by dotted class identifier.
"""

from couchdb_bundle.container import ContainerBuilder
from couchdb_bundle.domain import Alias, Definition
from couchdb_bundle.naming import ServiceNames, placeholder

__all__ = [
    "CLIENT_CLASS",
    "HTTP_CLIENT_CLASS",
    "DATA_COLLECTOR_CLASS",
    "FOLDER_DESIGN_DOCUMENT_CLASS",
    "FILE_LOCATOR_CLASS",
    "ODM_CLASSES",
    "load_client_services",
    "load_odm_services",
]

CLIENT_CLASS = "doctrine.couchdb.CouchDBClient"
HTTP_CLIENT_CLASS = "doctrine.couchdb.http.Client"
DATA_COLLECTOR_CLASS = "doctrine.bundle.couchdb.data_collector.CouchDBDataCollector"
FOLDER_DESIGN_DOCUMENT_CLASS = "doctrine.couchdb.view.FolderDesignDocument"
FILE_LOCATOR_CLASS = "doctrine.common.persistence.mapping.driver.SymfonyFileLocator"

# keyed by the part of the class parameter name between prefix and ".class"
ODM_CLASSES = {
    "odm.configuration": "doctrine.odm.couchdb.Configuration",
    "odm.document_manager": "doctrine.odm.couchdb.DocumentManager",
    "odm.event_manager": "doctrine.common.EventManager",
    "odm.metadata.driver_chain": "doctrine.common.persistence.mapping.driver.MappingDriverChain",
    "odm.metadata.annotation": "doctrine.odm.couchdb.mapping.driver.AnnotationDriver",
    "odm.metadata.annotation_reader": "doctrine.common.annotations.AnnotationReader",
    "odm.metadata.xml": "doctrine.odm.couchdb.mapping.driver.XmlDriver",
    "odm.metadata.yml": "doctrine.bundle.couchdb.mapping.driver.YamlDriver",
    "odm.metadata.php": "doctrine.odm.couchdb.mapping.driver.PHPDriver",
    "odm.metadata.staticphp": "doctrine.common.persistence.mapping.driver.StaticPHPDriver",
    "odm.cache.array": "doctrine.common.cache.ArrayCache",
    "odm.cache.apc": "doctrine.common.cache.ApcCache",
    "odm.cache.apcu": "doctrine.common.cache.ApcuCache",
    "odm.cache.xcache": "doctrine.common.cache.XcacheCache",
    "odm.cache.wincache": "doctrine.common.cache.WinCacheCache",
    "odm.cache.zenddata": "doctrine.common.cache.ZendDataCache",
    "odm.cache.memcache": "doctrine.common.cache.MemcacheCache",
    "odm.cache.memcache_instance": "Memcache",
    "odm.cache.memcached": "doctrine.common.cache.MemcachedCache",
    "odm.cache.memcached_instance": "Memcached",
    "odm.cache.redis": "doctrine.common.cache.RedisCache",
    "odm.cache.redis_instance": "Redis",
}

_CACHE_SERVERS = {
    "memcache": ("localhost", 11211),
    "memcached": ("localhost", 11211),
    "redis": ("localhost", 6379),
}


def load_client_services(container: ContainerBuilder, names: ServiceNames) -> None:
    """Register the abstract connection and the shared data collector."""
    container.set_parameter(names.class_parameter("client.connection"), CLIENT_CLASS)
    container.set_parameter(names.class_parameter("datacollector"), DATA_COLLECTOR_CLASS)

    (
        container.set_definition(
            names.connection_parent,
            Definition(placeholder(names.class_parameter("client.connection"))),
        )
        .set_factory(placeholder(names.class_parameter("client.connection")), "create")
        .set_abstract(True)
    )

    (
        container.set_definition(
            names.data_collector,
            Definition(placeholder(names.class_parameter("datacollector"))),
        )
        .add_tag("data_collector", template="@DoctrineCouchDB/Collector/couchdb", id="couchdb")
        .set_public(False)
    )


def load_odm_services(container: ContainerBuilder, names: ServiceNames) -> None:
    """Register class parameters and abstract parents for document managers."""
    for key, class_name in ODM_CLASSES.items():
        container.set_parameter(names.class_parameter(key), class_name)
    for kind, (host, port) in _CACHE_SERVERS.items():
        container.set_parameter(names.odm_parameter(f"cache.{kind}_host"), host)
        container.set_parameter(names.odm_parameter(f"cache.{kind}_port"), port)

    container.set_definition(
        names.configuration_parent,
        Definition(placeholder(names.class_parameter("odm.configuration"))),
    ).set_abstract(True)

    (
        container.set_definition(
            names.document_manager_parent,
            Definition(placeholder(names.class_parameter("odm.document_manager"))),
        )
        .set_factory(placeholder(names.class_parameter("odm.document_manager")), "create")
        .set_abstract(True)
    )

    container.set_definition(
        names.event_manager_parent,
        Definition(placeholder(names.class_parameter("odm.event_manager"))),
    ).set_abstract(True)

    if not container.has("annotation_reader"):
        container.set_definition(
            "annotation_reader",
            Definition(placeholder(names.class_parameter("odm.metadata.annotation_reader"))),
        )
    container.set_alias(names.annotation_reader, Alias("annotation_reader", public=False))
