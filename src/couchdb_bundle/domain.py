"""Domain models describing services before they are ever constructed."""

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Union

__all__ = ["Reference", "Alias", "MethodCall", "Definition", "Factory"]


@dataclass(frozen=True)
class Reference:
    """A symbolic pointer from one definition to another service id.

    References are never resolved here; the registry checks that they name an
    existing definition or alias when the container is compiled.

    Attributes:
        service_id: The id of the referenced service.
    """

    service_id: str

    def __str__(self):
        return self.service_id


@dataclass(frozen=True)
class Alias:
    """An alternative id for an existing service.

    Attributes:
        target: The service id (or another alias) this alias points at.
        public: Whether the alias may be fetched from the built container.
    """

    target: str
    public: bool = True


@dataclass(frozen=True)
class MethodCall:
    """A method to invoke on a service right after it has been constructed.

    Attributes:
        method: The method name on the constructed object.
        arguments: Positional arguments, which may contain references.
    """

    method: str
    arguments: tuple = ()


Factory = tuple[Union[Reference, str], str]
"""A ``(service reference or class identifier, method name)`` pair."""


@dataclass
class Definition:
    """A construction recipe for one service.

    Definitions are created and wired by the extension, owned by the container,
    and only changed afterwards by appending method calls during the same pass.

    Attributes:
        class_name: Class identifier of the service, possibly a ``%parameter%``.
        arguments: Ordered constructor arguments.
        method_calls: Calls made on the service after construction, in order.
        factory: Optional factory used instead of calling the class directly.
        parent: Id of an abstract definition this one inherits from.
        public: Whether the service may be fetched from the built container.
        abstract: Abstract definitions only serve as parents and are never built.
        tags: Tag name to list of attribute mappings.
    """

    class_name: Optional[str] = None
    arguments: list = field(default_factory=list)
    method_calls: list[MethodCall] = field(default_factory=list)
    factory: Optional[Factory] = None
    parent: Optional[str] = None
    public: bool = False
    abstract: bool = False
    tags: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    @classmethod
    def child_of(cls, parent: str) -> "Definition":
        return cls(parent=parent)

    def set_arguments(self, arguments: list) -> "Definition":
        self.arguments = list(arguments)
        return self

    def replace_argument(self, index: int, value: Any) -> "Definition":
        if index < 0 or index >= len(self.arguments):
            raise IndexError(
                f"Argument index {index} out of range for {len(self.arguments)} arguments"
            )
        self.arguments[index] = value
        return self

    def add_method_call(self, method: str, arguments: Union[list, tuple] = ()) -> "Definition":
        self.method_calls.append(MethodCall(method, tuple(arguments)))
        return self

    def has_method_call(self, method: str) -> bool:
        return any(call.method == method for call in self.method_calls)

    def method_calls_named(self, method: str) -> list[MethodCall]:
        return [call for call in self.method_calls if call.method == method]

    def set_factory(self, target: Union[Reference, str], method: str) -> "Definition":
        self.factory = (target, method)
        return self

    def set_public(self, public: bool) -> "Definition":
        self.public = public
        return self

    def set_abstract(self, abstract: bool) -> "Definition":
        self.abstract = abstract
        return self

    def add_tag(self, name: str, **attributes: Any) -> "Definition":
        self.tags.setdefault(name, []).append(attributes)
        return self

    def references(self) -> Iterator[Reference]:
        """Yield the references needed to construct this service.

        These are the references found in the constructor arguments and the
        factory; they constrain the order in which services are built.
        """
        yield from _find_references(self.arguments)
        if self.factory is not None and isinstance(self.factory[0], Reference):
            yield self.factory[0]

    def call_references(self) -> Iterator[Reference]:
        """Yield the references passed to post-construction method calls."""
        for call in self.method_calls:
            yield from _find_references(call.arguments)


def _find_references(value: Any) -> Iterator[Reference]:
    if isinstance(value, Reference):
        yield value
    elif isinstance(value, Definition):
        # inline definitions are built in place, so their needs become ours
        yield from value.references()
        yield from value.call_references()
    elif isinstance(value, dict):
        for item in value.values():
            yield from _find_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _find_references(item)
