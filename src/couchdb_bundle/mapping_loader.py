"""Resolve where each document manager's mapping metadata comes from.

For one document manager this module:

1. collects its mappings (plus every enabled bundle when ``auto_mapping`` is
   on), filling unset options from the bundle layout and recording each
   visited bundle's root directory;
2. registers one metadata driver per mapping type and a chain driver that
   routes each namespace prefix to its driver;
3. registers the design documents shipped under ``Resources/couchdb`` by the
   bundles whose namespace owns one of the mapped prefixes;
4. hands the alias map to the manager's configuration.

All intermediate state lives in a :class:`MappingResolution` created for a
single document manager, so nothing carries over from one manager to the next.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import structlog

from couchdb_bundle.configuration import DocumentManagerConfig, MappingConfig
from couchdb_bundle.container import ContainerBuilder
from couchdb_bundle.domain import Definition
from couchdb_bundle.errors import InvalidMappingError
from couchdb_bundle.naming import ServiceNames, placeholder
from couchdb_bundle.resources import FOLDER_DESIGN_DOCUMENT_CLASS

__all__ = [
    "MappingResolution",
    "resolve_document_manager_mappings",
    "load_mapping_information",
    "register_mapping_drivers",
    "discover_design_documents",
    "detect_metadata_driver",
    "DRIVER_TYPES",
]

logger = structlog.get_logger()

DRIVER_TYPES = ("xml", "yml", "annotation", "php", "staticphp")

MAPPING_OBJECT_DEFAULT_NAME = "documents"
MAPPING_RESOURCE_CONFIG_DIRECTORY = "Resources/config/doctrine"
MAPPING_RESOURCE_EXTENSION = "couchdb"
DESIGN_DOCUMENT_DIRECTORY = "Resources/couchdb"


@dataclass
class MappingResolution:
    """Mapping state gathered for a single document manager.

    Attributes:
        drivers: Driver type to ``{namespace prefix: mapping directory}``.
        alias_map: Alias to namespace prefix.
        bundle_dirs: Namespace of every visited bundle to its root directory.
    """

    drivers: dict[str, dict[str, str]] = field(default_factory=dict)
    alias_map: dict[str, str] = field(default_factory=dict)
    bundle_dirs: dict[str, Path] = field(default_factory=dict)


def resolve_document_manager_mappings(
    manager_name: str,
    manager: DocumentManagerConfig,
    configuration: Definition,
    container: ContainerBuilder,
    names: ServiceNames,
) -> MappingResolution:
    """Run the whole mapping resolution for one document manager.

    Args:
        manager_name: Name of the document manager.
        manager: Its validated configuration.
        configuration: The manager's configuration definition; design document
            and namespace method calls are appended to it.
        container: The container being loaded.
        names: Naming templates for service ids.

    Returns:
        The resolution, for callers that want to inspect it.

    Raises:
        InvalidMappingError: If a mapping names a disabled bundle, a missing
            directory or an unsupported type.
    """
    resolution = load_mapping_information(manager_name, manager, container)
    register_mapping_drivers(manager_name, resolution, container, names)
    discover_design_documents(resolution, configuration)
    configuration.add_method_call("setDocumentNamespaces", [dict(resolution.alias_map)])
    return resolution


def load_mapping_information(
    manager_name: str, manager: DocumentManagerConfig, container: ContainerBuilder
) -> MappingResolution:
    resolution = MappingResolution()

    mappings = dict(manager.mappings)
    if manager.auto_mapping:
        for bundle_name in _parameter(container, "kernel.bundles", {}):
            if bundle_name not in mappings:
                mappings[bundle_name] = MappingConfig(is_bundle=True)

    for mapping_name, mapping in mappings.items():
        if not mapping.mapping:
            continue

        settings = mapping.model_dump(include={"type", "dir", "prefix", "alias", "is_bundle"})
        if settings["dir"]:
            settings["dir"] = container.resolve_value(settings["dir"])

        # a bundle mapping is recognised by its dir not being an existing directory
        if settings["is_bundle"] is None:
            settings["is_bundle"] = not (settings["dir"] and Path(settings["dir"]).is_dir())

        if settings["is_bundle"]:
            settings = _bundle_config_defaults(mapping_name, settings, container, resolution)
            if settings is None:
                logger.debug(
                    "mapping.bundle_skipped",
                    document_manager=manager_name,
                    bundle=mapping_name,
                )
                continue

        _assert_valid_mapping(settings, manager_name)

        mapping_dir = Path(settings["dir"]).resolve()
        resolution.drivers.setdefault(settings["type"], {})[settings["prefix"]] = str(mapping_dir)
        resolution.alias_map[settings["alias"] or mapping_name] = settings["prefix"]

        logger.debug(
            "mapping.loaded",
            document_manager=manager_name,
            mapping=mapping_name,
            type=settings["type"],
            prefix=settings["prefix"],
            dir=str(mapping_dir),
        )

    return resolution


def _bundle_config_defaults(
    bundle_name: str, settings: dict, container: ContainerBuilder, resolution: MappingResolution
) -> Optional[dict]:
    bundles = _parameter(container, "kernel.bundles_metadata", {})
    if bundle_name not in bundles:
        raise InvalidMappingError(f'Bundle "{bundle_name}" does not exist or it is not enabled.')

    bundle_dir = Path(bundles[bundle_name]["path"])
    namespace = bundles[bundle_name]["namespace"]
    resolution.bundle_dirs[namespace] = bundle_dir

    settings = dict(settings)
    if not settings["type"]:
        settings["type"] = detect_metadata_driver(bundle_dir)
    if not settings["type"]:
        return None

    if not settings["dir"]:
        if settings["type"] in ("annotation", "staticphp"):
            settings["dir"] = str(bundle_dir / MAPPING_OBJECT_DEFAULT_NAME)
        else:
            settings["dir"] = str(bundle_dir / MAPPING_RESOURCE_CONFIG_DIRECTORY)
    else:
        settings["dir"] = f"{bundle_dir}/{settings['dir']}"

    if not settings["prefix"]:
        settings["prefix"] = f"{namespace}.{MAPPING_OBJECT_DEFAULT_NAME}"

    return settings


def detect_metadata_driver(bundle_dir: Path) -> Optional[str]:
    """Guess the mapping type of a bundle from the files it ships.

    Mapping files under ``Resources/config/doctrine`` win, in xml, yml, php
    order. Otherwise a ``documents`` package means annotations. ``None`` means
    the bundle has no mapping information.
    """
    config_dir = Path(bundle_dir) / MAPPING_RESOURCE_CONFIG_DIRECTORY
    for driver_type in ("xml", "yml", "php"):
        if any(config_dir.glob(f"*.{MAPPING_RESOURCE_EXTENSION}.{driver_type}")):
            return driver_type
    if (Path(bundle_dir) / MAPPING_OBJECT_DEFAULT_NAME).is_dir():
        return "annotation"
    return None


def _assert_valid_mapping(settings: dict, manager_name: str) -> None:
    if not settings["type"] or not settings["dir"] or not settings["prefix"]:
        raise InvalidMappingError(
            f'Mapping definitions for document manager "{manager_name}" require at least '
            'the "type", "dir" and "prefix" options.'
        )

    if not Path(settings["dir"]).is_dir():
        raise InvalidMappingError(
            f'Specified non-existing directory "{settings["dir"]}" as mapping source.'
        )

    if settings["type"] not in DRIVER_TYPES:
        raise InvalidMappingError(
            'Can only configure "xml", "yml", "annotation", "php" or "staticphp" mappings, '
            f'got "{settings["type"]}". Register other metadata drivers by adding them '
            f'to the chain driver of document manager "{manager_name}".'
        )


def register_mapping_drivers(
    manager_name: str,
    resolution: MappingResolution,
    container: ContainerBuilder,
    names: ServiceNames,
) -> None:
    """Register one driver per mapping type and the manager's chain driver.

    Existing driver definitions (for instance declared by the application) are
    extended with the resolved directories instead of being replaced.
    """
    chain_id = names.metadata_driver(manager_name)
    if container.has_definition(chain_id):
        chain = container.get_definition(chain_id)
    else:
        chain = Definition(placeholder(names.class_parameter("odm.metadata.driver_chain")))
        chain.set_public(False)

    for driver_type, driver_paths in resolution.drivers.items():
        service_id = names.mapping_driver(manager_name, driver_type)
        paths = list(driver_paths.values())
        locations = {path: prefix for prefix, path in driver_paths.items()}
        index = 1 if driver_type == "annotation" else 0

        if container.has_definition(service_id):
            driver = container.get_definition(service_id)
        else:
            driver = Definition(placeholder(names.class_parameter(f"odm.metadata.{driver_type}")))

        if len(driver.arguments) > index:
            existing = driver.arguments[index]
            if isinstance(existing, dict):
                driver.replace_argument(index, {**existing, **locations})
            else:
                driver.replace_argument(index, paths + list(existing))
        elif driver_type == "annotation":
            reader = driver.arguments[0] if driver.arguments else names.reference(names.annotation_reader)
            driver.set_arguments([reader, paths])
        else:
            driver.set_arguments([paths])

        driver.set_public(False)
        if driver_type in ("xml", "yml"):
            # file drivers locate mappings by directory, keyed to the namespace prefix
            existing = driver.arguments[0]
            driver.replace_argument(0, existing if isinstance(existing, dict) else locations)
            if not driver.has_method_call("setGlobalBasename"):
                driver.add_method_call("setGlobalBasename", ["mapping"])

        container.set_definition(service_id, driver)

        for prefix in driver_paths:
            chain.add_method_call("addDriver", [names.reference(service_id), prefix])

    container.set_definition(chain_id, chain)


def discover_design_documents(resolution: MappingResolution, configuration: Definition) -> None:
    """Register design document folders shipped by the mapped bundles.

    For every mapped prefix and every visited bundle whose namespace starts the
    prefix, each sub-directory of ``<bundle>/Resources/couchdb`` becomes a
    folder design document named after the directory. Sub-directories are
    visited in name order so the result does not depend on the filesystem.
    """
    for prefix in resolution.alias_map.values():
        for bundle_namespace, bundle_dir in resolution.bundle_dirs.items():
            design_dir = Path(bundle_dir) / DESIGN_DOCUMENT_DIRECTORY
            if not prefix.startswith(bundle_namespace) or not design_dir.is_dir():
                continue

            for entry in sorted(design_dir.iterdir(), key=lambda path: path.name):
                if not entry.is_dir():
                    continue
                configuration.add_method_call(
                    "addDesignDocument",
                    [entry.name, FOLDER_DESIGN_DOCUMENT_CLASS, str(design_dir / entry.name)],
                )
                logger.debug(
                    "mapping.design_document_discovered",
                    name=entry.name,
                    bundle=bundle_namespace,
                    path=str(design_dir / entry.name),
                )


def _parameter(container: ContainerBuilder, name: str, default):
    return container.get_parameter(name) if container.has_parameter(name) else default
