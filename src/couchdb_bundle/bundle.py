"""
Application bundles as seen by the mapping loader.

A bundle is a Python package shipped with the application. Its mappings and
design documents are found relative to its root directory:

    <root>/Resources/config/doctrine/*.couchdb.{xml,yml,php}   mapping files
    <root>/documents/                                           annotated classes
    <root>/Resources/couchdb/<design document>/                 design documents

The kernel publishes the enabled bundles as the ``kernel.bundles`` and
``kernel.bundles_metadata`` container parameters, which is the only way the
extension learns about them.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

__all__ = ["KernelBundle", "kernel_parameters"]


@dataclass(frozen=True)
class KernelBundle:
    """An enabled application bundle.

    Attributes:
        name: The bundle name, used as the mapping name under ``auto_mapping``.
        namespace: Dotted package name of the bundle, e.g. ``acme.blog``.
        path: Filesystem root of the bundle package.
    """

    name: str
    namespace: str
    path: Path

    def metadata(self) -> dict[str, str]:
        return {"path": str(self.path), "namespace": self.namespace}


def kernel_parameters(
    bundles: Iterable[KernelBundle] = (),
    debug: bool = False,
    project_dir: Union[str, Path] = ".",
    cache_dir: Optional[Union[str, Path]] = None,
    container_class: str = "AppKernelContainer",
) -> dict:
    """Build the kernel parameters the extension and mapping loader read.

    Bundles keep their given order, which is the order auto mapping visits them.
    """
    bundles = list(bundles)
    project_dir = Path(project_dir)
    return {
        "kernel.debug": debug,
        "kernel.project_dir": str(project_dir),
        "kernel.cache_dir": str(cache_dir if cache_dir is not None else project_dir / "var" / "cache"),
        "kernel.container_class": container_class,
        "kernel.bundles": {bundle.name: bundle.namespace for bundle in bundles},
        "kernel.bundles_metadata": {bundle.name: bundle.metadata() for bundle in bundles},
    }
