"""Compiler passes that let bundles register document mappings.

A bundle whose document classes live outside the auto-mapped folders declares
them with one of the ``create_*_mapping_driver`` factories and adds the returned
pass to the container::

    container.add_compiler_pass(
        create_xml_mapping_driver(
            {"/srv/app/acme/blog/mapping": "acme.blog.model"},
            ["acme_blog.document_manager"],
            enabled_parameter="acme_blog.backend_couchdb",
        )
    )

When the container is compiled the pass picks the document manager named by the
first set parameter in its list (the bundle-wide default manager parameter is
always tried last), and adds its driver to that manager's chain driver.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Iterable, Optional, Union

import structlog

from couchdb_bundle.container import ContainerBuilder
from couchdb_bundle.domain import Definition, Reference
from couchdb_bundle.errors import ParameterNotFoundError
from couchdb_bundle.naming import ServiceNames, names as default_names
from couchdb_bundle.resources import FILE_LOCATOR_CLASS, ODM_CLASSES

__all__ = [
    "Xml",
    "Yaml",
    "Annotation",
    "StaticDeclaration",
    "PlainClass",
    "MappingFormat",
    "driver_definition",
    "MappingsPass",
    "create_mapping_driver",
    "create_xml_mapping_driver",
    "create_yaml_mapping_driver",
    "create_annotation_mapping_driver",
    "create_php_mapping_driver",
    "create_static_mapping_driver",
]

logger = structlog.get_logger()


@dataclass(frozen=True)
class Xml:
    """Mapping files next to the classes, named ``<Class>.couchdb.xml``."""

    suffix: str = ".couchdb.xml"
    driver_class: str = ODM_CLASSES["odm.metadata.xml"]


@dataclass(frozen=True)
class Yaml:
    """Mapping files named ``<Class>.couchdb.yml``."""

    suffix: str = ".couchdb.yml"
    driver_class: str = ODM_CLASSES["odm.metadata.yml"]


@dataclass(frozen=True)
class Annotation:
    """Metadata read from annotations on the document classes themselves.

    Attributes:
        directories: Directories holding the annotated classes.
        reader: Service id of the annotation reader.
    """

    directories: tuple[str, ...] = ()
    reader: str = "annotation_reader"
    driver_class: str = ODM_CLASSES["odm.metadata.annotation"]


@dataclass(frozen=True)
class StaticDeclaration:
    """Classes that declare their own metadata through a static method."""

    directories: tuple[str, ...] = ()
    driver_class: str = ODM_CLASSES["odm.metadata.staticphp"]


@dataclass(frozen=True)
class PlainClass:
    """One plain mapping file per class, named ``<Class>.php``."""

    suffix: str = ".php"
    driver_class: str = ODM_CLASSES["odm.metadata.php"]


MappingFormat = Union[Xml, Yaml, Annotation, StaticDeclaration, PlainClass]


def driver_definition(mapping_format: MappingFormat, mappings: Mapping) -> Definition:
    """Build the metadata driver definition for a mapping format.

    Args:
        mapping_format: The format the mapping metadata is written in.
        mappings: Directory to namespace mapping, used by the file locator of
            file-based formats.

    Returns:
        An inline definition of the driver.
    """
    if isinstance(mapping_format, (Xml, Yaml, PlainClass)):
        locator = Definition(FILE_LOCATOR_CLASS, [dict(mappings), mapping_format.suffix])
        return Definition(mapping_format.driver_class, [locator])
    if isinstance(mapping_format, Annotation):
        return Definition(
            mapping_format.driver_class,
            [Reference(mapping_format.reader), list(mapping_format.directories)],
        )
    if isinstance(mapping_format, StaticDeclaration):
        return Definition(mapping_format.driver_class, [list(mapping_format.directories)])
    raise TypeError(f"{mapping_format!r} is not a mapping format")


class MappingsPass:
    """Register a metadata driver for some namespaces with a document manager.

    Use one of the ``create_*`` factories rather than building this directly.

    Args:
        driver: The driver definition, or a reference to a driver service.
        namespaces: Namespaces this driver handles.
        manager_parameters: Parameters that may name the document manager to
            use. The default document manager parameter is appended.
        enabled_parameter: If given, the pass does nothing unless this
            parameter exists in the container.
        alias_map: Map of alias to namespace.
    """

    def __init__(
        self,
        driver: Union[Definition, Reference],
        namespaces: Iterable[str],
        manager_parameters: Iterable[str],
        enabled_parameter: Optional[str] = None,
        alias_map: Optional[dict[str, str]] = None,
        names: ServiceNames = default_names,
    ):
        self.driver = driver
        self.namespaces = list(namespaces)
        self.manager_parameters = list(manager_parameters) + [
            names.default_document_manager_parameter
        ]
        self.enabled_parameter = enabled_parameter
        self.alias_map = dict(alias_map or {})
        self.driver_pattern = names.metadata_driver_pattern
        self.configuration_pattern = names.configuration_pattern
        self.register_alias_method_name = "addDocumentNamespace"

    def enabled(self, container: ContainerBuilder) -> bool:
        return not self.enabled_parameter or container.has_parameter(self.enabled_parameter)

    def process(self, container: ContainerBuilder) -> None:
        if not self.enabled(container):
            logger.debug(
                "mapping.pass_disabled",
                enabled_parameter=self.enabled_parameter,
                namespaces=self.namespaces,
            )
            return

        manager_name = self.manager_name(container)
        chain_driver = container.get_definition(self.driver_pattern % manager_name)
        for namespace in self.namespaces:
            chain_driver.add_method_call("addDriver", [self.driver, namespace])

        logger.debug(
            "mapping.pass_registered",
            document_manager=manager_name,
            namespaces=self.namespaces,
            aliases=sorted(self.alias_map),
        )

        if not self.alias_map:
            return

        configuration = container.get_definition(self.configuration_pattern % manager_name)
        for alias, namespace in self.alias_map.items():
            configuration.add_method_call(self.register_alias_method_name, [alias, namespace])

    def manager_name(self, container: ContainerBuilder) -> str:
        """Return the value of the first set, non-empty manager parameter.

        Raises:
            ParameterNotFoundError: If none of the parameters is set.
        """
        for parameter in self.manager_parameters:
            if container.has_parameter(parameter):
                name = container.get_parameter(parameter)
                if name:
                    return name

        tried = '", "'.join(self.manager_parameters)
        raise ParameterNotFoundError(
            "Could not find the manager name parameter in the container. "
            f'Tried the following parameter names: "{tried}"'
        )


def create_mapping_driver(
    mapping_format: MappingFormat,
    mappings: Union[Mapping, Iterable[str]],
    manager_parameters: Iterable[str] = (),
    enabled_parameter: Optional[str] = None,
    alias_map: Optional[dict[str, str]] = None,
) -> MappingsPass:
    """Create a :class:`MappingsPass` for any mapping format.

    Args:
        mapping_format: The format, carrying its own suffix or directories.
        mappings: Directory to namespace mapping for file-based formats, or the
            list of namespaces for annotation and static formats.
        manager_parameters: Parameters that could name the document manager
            your bundle uses.
        enabled_parameter: Parameter that must be present to enable the mapping.
        alias_map: Map of alias to namespace.
    """
    if isinstance(mappings, Mapping):
        locator_mappings = dict(mappings)
        namespaces = list(mappings.values())
    else:
        locator_mappings = {}
        namespaces = list(mappings)

    return MappingsPass(
        driver_definition(mapping_format, locator_mappings),
        namespaces,
        manager_parameters,
        enabled_parameter,
        alias_map,
    )


def create_xml_mapping_driver(
    mappings: Mapping,
    manager_parameters: Iterable[str],
    enabled_parameter: Optional[str] = None,
    alias_map: Optional[dict[str, str]] = None,
) -> MappingsPass:
    return create_mapping_driver(Xml(), mappings, manager_parameters, enabled_parameter, alias_map)


def create_yaml_mapping_driver(
    mappings: Mapping,
    manager_parameters: Iterable[str],
    enabled_parameter: Optional[str] = None,
    alias_map: Optional[dict[str, str]] = None,
) -> MappingsPass:
    return create_mapping_driver(Yaml(), mappings, manager_parameters, enabled_parameter, alias_map)


def create_annotation_mapping_driver(
    namespaces: Iterable[str],
    directories: Iterable[str],
    manager_parameters: Iterable[str],
    enabled_parameter: Optional[str] = None,
    alias_map: Optional[dict[str, str]] = None,
) -> MappingsPass:
    return create_mapping_driver(
        Annotation(tuple(directories)),
        namespaces,
        manager_parameters,
        enabled_parameter,
        alias_map,
    )


def create_php_mapping_driver(
    mappings: Mapping,
    manager_parameters: Iterable[str] = (),
    enabled_parameter: Optional[str] = None,
    alias_map: Optional[dict[str, str]] = None,
) -> MappingsPass:
    return create_mapping_driver(
        PlainClass(), mappings, manager_parameters, enabled_parameter, alias_map
    )


def create_static_mapping_driver(
    namespaces: Iterable[str],
    directories: Iterable[str],
    manager_parameters: Iterable[str] = (),
    enabled_parameter: Optional[str] = None,
    alias_map: Optional[dict[str, str]] = None,
) -> MappingsPass:
    return create_mapping_driver(
        StaticDeclaration(tuple(directories)),
        namespaces,
        manager_parameters,
        enabled_parameter,
        alias_map,
    )
