"""The service registry that extensions and compiler passes populate."""

import re
from typing import Any, Optional, Protocol, Union

import structlog

from couchdb_bundle.domain import Alias, Definition
from couchdb_bundle.errors import ParameterNotFoundError, ServiceNotFoundError
from couchdb_bundle.manifest import ServiceManifest, ServiceManifestBuilder

__all__ = ["CompilerPass", "ContainerBuilder"]

logger = structlog.get_logger()

_PLACEHOLDER = re.compile(r"%%|%([^%\s]+)%")


class CompilerPass(Protocol):
    """A step run against the whole container once all extensions have loaded."""

    def process(self, container: "ContainerBuilder") -> None: ...


class ContainerBuilder:
    """Registry of service definitions, aliases and parameters.

    The builder only records construction recipes. It validates the graph when
    compiled but never constructs any service.

    Example:
        >>> container = ContainerBuilder()
        >>> container.set_parameter("couchdb.host", "localhost")
        >>> container.set_definition("client", Definition("Client", ["%couchdb.host%"]))
        >>> container.set_alias("default_client", "client")
        >>> manifest = container.compile()
        >>> manifest.build_order
        ['client']
    """

    def __init__(self, parameters: Optional[dict[str, Any]] = None):
        self._definitions: dict[str, Definition] = {}
        self._aliases: dict[str, Alias] = {}
        self._parameters: dict[str, Any] = dict(parameters or {})
        self._passes: list[CompilerPass] = []
        self._processed = 0

    # definitions

    @property
    def definitions(self) -> dict[str, Definition]:
        return self._definitions

    def set_definition(self, service_id: str, definition: Definition) -> Definition:
        """Register a definition, replacing any definition or alias with the same id.

        Returns:
            The registered definition, so that calls can be chained onto it.
        """
        self._aliases.pop(service_id, None)
        self._definitions[service_id] = definition
        logger.debug(
            "container.definition_registered",
            service_id=service_id,
            class_name=definition.class_name,
            parent=definition.parent,
        )
        return definition

    def has_definition(self, service_id: str) -> bool:
        return service_id in self._definitions

    def get_definition(self, service_id: str) -> Definition:
        try:
            return self._definitions[service_id]
        except KeyError:
            raise ServiceNotFoundError(service_id) from None

    def find_definition(self, service_id: str) -> Definition:
        """Return the definition for an id, following aliases if necessary."""
        seen = set()
        while service_id in self._aliases and service_id not in seen:
            seen.add(service_id)
            service_id = self._aliases[service_id].target
        return self.get_definition(service_id)

    # aliases

    @property
    def aliases(self) -> dict[str, Alias]:
        return self._aliases

    def set_alias(self, alias_id: str, target: Union[str, Alias]) -> Alias:
        alias = target if isinstance(target, Alias) else Alias(target)
        if alias.target == alias_id:
            raise ValueError(f"An alias can not reference itself, got a circular reference on '{alias_id}'")
        self._definitions.pop(alias_id, None)
        self._aliases[alias_id] = alias
        logger.debug("container.alias_registered", alias=alias_id, target=alias.target)
        return alias

    def get_alias(self, alias_id: str) -> Alias:
        try:
            return self._aliases[alias_id]
        except KeyError:
            raise ServiceNotFoundError(alias_id) from None

    def has(self, service_id: str) -> bool:
        return service_id in self._definitions or service_id in self._aliases

    # parameters

    @property
    def parameters(self) -> dict[str, Any]:
        return self._parameters

    def set_parameter(self, name: str, value: Any) -> None:
        self._parameters[name] = value

    def has_parameter(self, name: str) -> bool:
        return name in self._parameters

    def get_parameter(self, name: str) -> Any:
        try:
            return self._parameters[name]
        except KeyError:
            raise ParameterNotFoundError(f"You have requested a non-existent parameter '{name}'") from None

    def resolve_value(self, value: Any) -> Any:
        """Substitute ``%parameter%`` placeholders in a value.

        A string that is exactly one placeholder resolves to the parameter value
        itself, whatever its type. Placeholders embedded in a longer string are
        replaced by the string form of the value, and ``%%`` yields a literal
        percent sign. Lists, tuples and dicts are resolved recursively.

        Raises:
            ParameterNotFoundError: If a placeholder names an unset parameter.
        """
        return self._resolve(value, ())

    def _resolve(self, value: Any, resolving: tuple) -> Any:
        if isinstance(value, dict):
            return {
                self._resolve(key, resolving): self._resolve(item, resolving)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [self._resolve(item, resolving) for item in value]
        if isinstance(value, tuple):
            return tuple(self._resolve(item, resolving) for item in value)
        if not isinstance(value, str):
            return value

        whole = _PLACEHOLDER.fullmatch(value)
        if whole and whole.group(1):
            return self._resolve_parameter(whole.group(1), resolving)

        def substitute(match):
            if match.group(1) is None:
                return "%"
            resolved = self._resolve_parameter(match.group(1), resolving)
            if isinstance(resolved, (dict, list, tuple)):
                raise ParameterNotFoundError(
                    f"A string value must be composed of strings and/or numbers, "
                    f"but found parameter '{match.group(1)}' of type {type(resolved).__name__} "
                    f"inside string value '{value}'"
                )
            return str(resolved)

        return _PLACEHOLDER.sub(substitute, value)

    def _resolve_parameter(self, name: str, resolving: tuple) -> Any:
        if name in resolving:
            raise ParameterNotFoundError(
                f"Circular reference detected for parameter '{name}' ({' > '.join(resolving + (name,))})"
            )
        if name not in self._parameters:
            raise ParameterNotFoundError(f"You have requested a non-existent parameter '{name}'")
        return self._resolve(self._parameters[name], resolving + (name,))

    # compilation

    def add_compiler_pass(self, compiler_pass: CompilerPass) -> None:
        self._passes.append(compiler_pass)

    def compile(self) -> ServiceManifest:
        """Run the compiler passes in registration order and validate the graph.

        Each pass runs once. Compiling again only runs passes added since the
        previous compile, then validates the graph anew.

        Returns:
            A :class:`ServiceManifest` describing the compiled services.

        Raises:
            ServiceNotFoundError: If a reference names a service that does not exist.
            CircularReferenceError: If constructor dependencies form a cycle.
        """
        pending, self._processed = self._passes[self._processed :], len(self._passes)
        for compiler_pass in pending:
            logger.debug("container.compiler_pass", compiler_pass=type(compiler_pass).__name__)
            compiler_pass.process(self)

        manifest = ServiceManifestBuilder().build(self)
        logger.info(
            "container.compiled",
            services=len(manifest.definitions),
            aliases=len(manifest.aliases),
            parameters=len(manifest.parameters),
        )
        return manifest
