"""High level entry points for building and compiling containers."""

from typing import Any, Iterable, Optional, Union

from couchdb_bundle.bundle import KernelBundle, kernel_parameters
from couchdb_bundle.container import CompilerPass, ContainerBuilder
from couchdb_bundle.extension import CouchDBExtension
from couchdb_bundle.manifest import ServiceManifest

__all__ = ["make_container", "make_manifest"]


def make_container(
    configs: Union[list[dict], dict],
    bundles: Iterable[KernelBundle] = (),
    debug: bool = False,
    parameters: Optional[dict[str, Any]] = None,
    compiler_passes: Iterable[CompilerPass] = (),
) -> ContainerBuilder:
    """Create a :class:`ContainerBuilder` loaded from the given configuration.

    Args:
        configs: ``doctrine_couchdb`` configuration fragments, in load order.
        bundles: The enabled application bundles, in kernel order.
        debug: The kernel debug flag.
        parameters: Extra parameters, overriding the kernel defaults.
        compiler_passes: Passes to run when the container is compiled, such as
            the ones returned by the ``create_*_mapping_driver`` factories.

    Returns:
        The loaded, not yet compiled, container.

    Raises:
        ConfigurationError: If the configuration cannot be loaded.

    Example:
        >>> container = make_container({"client": {"dbname": "blog"}})
        >>> container.get_alias("couchdb_connection").target
        'doctrine_couchdb.client.default_connection'
    """
    container_parameters = kernel_parameters(bundles, debug)
    container_parameters.update(parameters or {})
    container = ContainerBuilder(container_parameters)

    CouchDBExtension().load(configs, container)

    for compiler_pass in compiler_passes:
        container.add_compiler_pass(compiler_pass)
    return container


def make_manifest(
    configs: Union[list[dict], dict],
    bundles: Iterable[KernelBundle] = (),
    debug: bool = False,
    parameters: Optional[dict[str, Any]] = None,
    compiler_passes: Iterable[CompilerPass] = (),
) -> ServiceManifest:
    """Load and compile a container, returning its :class:`ServiceManifest`.

    Raises:
        ConfigurationError: If the configuration cannot be loaded.
        ContainerError: If the compiled service graph is inconsistent.
    """
    container = make_container(configs, bundles, debug, parameters, compiler_passes)
    return container.compile()
