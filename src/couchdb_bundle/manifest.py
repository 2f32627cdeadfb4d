"""Utilities for validating a compiled service graph.

This module checks that every reference in a container names a registered
service, resolves alias chains, and orders concrete services so that each one
is listed after the services its constructor or factory needs.

The :class:`ServiceManifest` describes the finished graph. It is a static
description only: services are never constructed here.
"""

from collections import deque, defaultdict
from dataclasses import dataclass
from typing import Iterable, TYPE_CHECKING

from couchdb_bundle.domain import Alias, Definition
from couchdb_bundle.errors import CircularReferenceError, ServiceNotFoundError

if TYPE_CHECKING:
    from couchdb_bundle.container import ContainerBuilder

__all__ = ["ServiceManifest", "ServiceManifestBuilder"]


@dataclass(frozen=True)
class ServiceManifest:
    """Description of the services held by a compiled container."""

    definitions: dict[str, Definition]
    """Concrete (non-abstract) definitions keyed by service id."""

    aliases: dict[str, str]
    """Alias ids mapped to the service id they finally resolve to."""

    parameters: dict
    """Container parameters at compile time."""

    build_order: list[str]
    """Concrete service ids, each after the services it is constructed from."""

    def public_services(self) -> list[str]:
        return [
            service_id for service_id, definition in self.definitions.items() if definition.public
        ]

    def __contains__(self, service_id: str) -> bool:
        return service_id in self.definitions or service_id in self.aliases


class _DependencyGraph:
    """
    Internal helper to represent and traverse a directed acyclic graph of service dependencies.

    Each node corresponds to a service id, and each edge indicates a construction dependency.
    The graph supports topological traversal, raising an error if cycles remain.
    """

    def __init__(self):
        self._dependencies: dict[str, set[str]] = defaultdict(set)

    def add_dependencies(self, dependee: str, dependencies: Iterable[str]):
        """
        Add one or more dependencies to the graph for a given dependee node.

        Args:
            dependee: The service id whose dependencies are being registered.
            dependencies: Service ids this dependee is constructed from.
        """
        self._dependencies[dependee].update(dependencies)

    def traverse(self):
        """
        Perform a topological traversal of the dependency graph.

        Yields:
            Service ids in an order where all dependencies of each node
            are yielded before the node itself.

        Raises:
            CircularReferenceError: If any cycles remain.
        """
        ready = deque(
            dependee
            for dependee, dependencies in self._dependencies.items()
            if len(dependencies) == 0
        )

        while len(ready) > 0:
            next_item = ready.popleft()
            yield next_item

            self._remove_dependency(next_item, ready)

        if len(self._dependencies) > 0:
            raise CircularReferenceError(
                f"Circular references between services: {sorted(self._dependencies.keys())}"
            )

    def _remove_dependency(self, next_item, ready):
        del self._dependencies[next_item]

        for dependee, dependencies in self._dependencies.items():
            if len(dependencies) > 0:
                dependencies.discard(next_item)
                if len(dependencies) == 0:
                    ready.append(dependee)


class ServiceManifestBuilder:
    """Validate a container and describe it as a :class:`ServiceManifest`."""

    def build(self, container: "ContainerBuilder") -> ServiceManifest:
        """Build a ServiceManifest from a container whose passes have run.

        Args:
            container: The container to describe.

        Returns:
            The manifest of concrete services, resolved aliases and build order.

        Raises:
            ServiceNotFoundError: If an alias, parent or reference names no service.
            CircularReferenceError: If construction dependencies form a cycle.
        """
        definitions = container.definitions
        aliases = self._resolve_aliases(container.aliases, definitions)

        def resolve(service_id: str, referenced_by: str) -> str:
            if service_id in definitions:
                return service_id
            if service_id in aliases:
                return aliases[service_id]
            raise ServiceNotFoundError(service_id, referenced_by)

        concrete = {
            service_id: definition
            for service_id, definition in definitions.items()
            if not definition.abstract
        }

        graph = _DependencyGraph()
        for service_id, definition in definitions.items():
            if definition.parent is not None:
                resolve(definition.parent, service_id)
            for reference in definition.call_references():
                resolve(reference.service_id, service_id)
            dependencies = {
                resolve(reference.service_id, service_id)
                for reference in definition.references()
            }
            if service_id in concrete:
                graph.add_dependencies(service_id, dependencies & concrete.keys())

        return ServiceManifest(
            concrete,
            aliases,
            dict(container.parameters),
            list(graph.traverse()),
        )

    def _resolve_aliases(
        self, aliases: dict[str, Alias], definitions: dict[str, Definition]
    ) -> dict[str, str]:
        resolved = {}
        for alias_id in aliases:
            seen = [alias_id]
            target = aliases[alias_id].target
            while target not in definitions:
                if target not in aliases:
                    raise ServiceNotFoundError(target, alias_id)
                if target in seen:
                    raise CircularReferenceError(f"Circular alias chain: {seen + [target]}")
                seen.append(target)
                target = aliases[target].target
            resolved[alias_id] = target
        return resolved
