import inspect
import warnings
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any, ClassVar

from fast_depends import Depends, inject
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .exceptions import OperationNotImplementedError, UndeclaredComponentError
from .references import ENV_PREFIX, find_references

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Awaitable, Callable, Iterable

    OperationFn = Callable[..., Awaitable[Any]]

DEFAULT_OPERATION = "default"
REMOVE_OPERATION = "remove"


class ComponentDescriptor(BaseModel):
    """One component instance of a template, as seen by a single deployment run."""

    alias: str
    ref: str
    inputs: Any = Field(default_factory=dict)
    dependencies: frozenset[str] = Field(default_factory=frozenset)
    outputs: Any | None = None

    model_config = ConfigDict(extra="forbid")


def extract_dependencies(inputs: Any, aliases: "Iterable[str]") -> frozenset[str]:
    """Return the aliases referenced anywhere within a component's raw inputs."""
    aliases = set(aliases)
    dependencies: set[str] = set()

    for path in find_references(inputs):
        if path.startswith(ENV_PREFIX):
            continue

        referenced = path.split(".", 1)[0]
        if referenced not in aliases:
            raise UndeclaredComponentError(referenced, f"${{{path}}}")

        dependencies.add(referenced)

    return frozenset(dependencies)


class Component(BaseModel):
    """
    A deployable component implementation. Decorating an async function with the
    component registers it as the default (deploy) operation, and
    `component.operation(name)` registers any other named operation.

    ```python
    bucket = Component(name="bucket")

    @bucket
    async def _deploy(inputs: dict[str, Any], alias: str) -> dict[str, Any]: ...

    @bucket.operation("remove")
    async def _remove(alias: str) -> None: ...
    ```
    """

    name: str

    _registry: ClassVar[dict[str, "Component"]] = {}
    _operations: dict[str, Any] = PrivateAttr(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)

    def model_post_init(self, __context: Any) -> None:
        if self.name in Component._registry:
            warnings.warn(
                f"Component '{self.name}' is already registered. This will override"
                " that implementation.",
                stacklevel=3,
            )

        Component._registry[self.name] = self

    @classmethod
    def registered(cls, name: str) -> "Component | None":
        return cls._registry.get(name)

    @property
    def operations(self) -> set[str]:
        return set(self._operations)

    def operation(self, name: str) -> "Callable[[OperationFn], OperationFn]":
        def _register(fn: "OperationFn") -> "OperationFn":
            self._operations[name] = fn
            return fn

        return _register

    def __call__(self, fn: "OperationFn") -> "OperationFn":
        return self.operation(DEFAULT_OPERATION)(fn)

    def get_operation(self, name: str) -> "OperationFn | None":
        return self._operations.get(name)


@lru_cache
def _get_available_parameters(fn) -> dict[str, dict[str, Any]]:
    signature = inspect.signature(fn)
    return {
        param.name: {
            "annotation": param.annotation,
            "optional": param.default is not inspect.Parameter.empty,
        }
        for param in signature.parameters.values()
        if param.name != "self"
    }


@lru_cache(maxsize=None)
def _get_resolved_fn(fn: "OperationFn") -> "OperationFn":
    return inject(fn)


@dataclass
class ComponentInstance:
    """A component bound to the alias it is deployed under."""

    component: Component
    alias: str

    def implements(self, operation: str) -> bool:
        return self.component.get_operation(operation) is not None

    def _prepare_arguments(self, fn: "OperationFn", inputs: Any) -> dict[str, Any]:
        available: dict[str, Any] = {"inputs": inputs, "alias": self.alias}

        parameters = _get_available_parameters(fn)
        resolved_args = {
            name: available[name] for name in parameters if name in available
        }
        resolved_optional_args: set[str] = {
            name
            for name, param in parameters.items()
            if (
                # optional also captures dependencies defined as `a = Depends(_a)`
                param["optional"]
                or (
                    (meta := getattr(param["annotation"], "__metadata__", None))
                    and len(meta) == 2
                    and isinstance(meta[1], Depends)
                )
            )
        }

        if missing_args := (
            parameters.keys() - resolved_args.keys() - resolved_optional_args
        ):
            raise ValueError(
                f"Component {self.component.name} has unresolvable parameters:"
                f" {missing_args}"
            )

        return resolved_args

    async def invoke(self, operation: str, inputs: Any = None) -> Any:
        fn = self.component.get_operation(operation)
        if fn is None:
            raise OperationNotImplementedError(operation, [self.alias])

        arguments = self._prepare_arguments(fn, {} if inputs is None else inputs)
        return await _get_resolved_fn(fn)(**arguments)

    async def __call__(self, inputs: Any = None) -> Any:
        return await self.invoke(DEFAULT_OPERATION, inputs)

    async def remove(self) -> Any:
        return await self.invoke(REMOVE_OPERATION)
