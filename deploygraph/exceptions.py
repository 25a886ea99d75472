from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable, Mapping
    from typing import Any


class DeploygraphError(Exception):
    def __init__(self, *args: "Any", **kwargs: "Any") -> None:
        super().__init__(*args, **kwargs)


##
## CONFIGURATION
##


class ConfigurationError(DeploygraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class TemplateError(ConfigurationError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class UndeclaredComponentError(ConfigurationError):
    def __init__(self, alias: str, expression: str | None = None) -> None:
        self.alias = alias
        self.expression = expression

        if expression is None:
            super().__init__(f"Component '{alias}' is not declared in the template.")
        else:
            super().__init__(
                f"The referenced component in expression '{expression}' does not"
                " exist."
            )


class CyclicTemplateError(ConfigurationError):
    def __init__(self, cycles: list[tuple[str, ...]]) -> None:
        self.cycles = cycles

        lines = ["Templates cannot contain circular dependencies. Offending cycles:"]
        for index, cycle in enumerate(cycles, start=1):
            path = (*cycle, cycle[0])
            lines.append(f"  {index}. {' -> '.join(path)}")
            lines.append(f"     {' <- '.join(reversed(path))}")

        super().__init__("\n".join(lines))


class UnresolvedGraphError(ConfigurationError):
    def __init__(self) -> None:
        super().__init__("Graphs must be resolved before they can be used.")


class MissingEntryPointError(ConfigurationError):
    def __init__(self, ref: str, entry_point: str) -> None:
        super().__init__(
            f"Local component '{ref}' has no entry point. Expected '{entry_point}'"
            " to exist and export a module-level `component`."
        )


class UnknownComponentError(ConfigurationError):
    def __init__(self, ref: str) -> None:
        super().__init__(
            f"Component '{ref}' is not defined in the current runtime. Register it"
            f" with `Component(name='{ref}')` or publish it as an entry point."
        )


##
## REFERENCE RESOLUTION
##


class ResolutionError(ConfigurationError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class InvalidReferenceError(ResolutionError):
    def __init__(self, expression: str) -> None:
        self.expression = expression
        super().__init__(f"Invalid reference {expression}.")


class NonStringInterpolationError(ResolutionError):
    def __init__(self, expression: str, value: "Any") -> None:
        self.expression = expression
        super().__init__(
            f"The reference {expression} is embedded in a larger string but resolves"
            f" to a non-string value of type '{type(value).__name__}'."
        )


class UnresolvableTemplateError(ResolutionError):
    def __init__(self, expressions: "Iterable[str]", passes: int) -> None:
        self.expressions = sorted(set(expressions))
        super().__init__(
            f"Static variables could not be resolved after {passes} passes. They"
            " likely reference each other. Offending references:"
            f" {', '.join(self.expressions)}"
        )


##
## EXECUTION
##


class ExecutionError(DeploygraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class StalledExecutionError(ExecutionError):
    def __init__(self, pending: "Iterable[str]") -> None:
        super().__init__(
            "No component is ready to run but the graph still contains"
            f" {sorted(pending)}. The dependency graph was not validated."
        )


class ComponentInvocationError(ExecutionError):
    def __init__(
        self,
        operation: str,
        errors: "Mapping[str, BaseException]",
        outputs: "Mapping[str, Any] | None" = None,
    ) -> None:
        self.operation = operation
        self.errors = dict(errors)
        self.outputs = dict(outputs or {})

        details = "\n  ".join(
            f"{alias}: {type(error).__name__}: {error}"
            for alias, error in sorted(self.errors.items())
        )
        super().__init__(
            f"Operation '{operation}' failed for {len(self.errors)} component(s):\n"
            f"  {details}"
        )


##
## DISPATCH
##


class DispatchError(DeploygraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class OperationNotImplementedError(DispatchError):
    def __init__(self, operation: str, aliases: "Iterable[str]") -> None:
        self.operation = operation
        self.aliases = sorted(aliases)
        super().__init__(
            f"Operation '{operation}' is not implemented by component(s):"
            f" {', '.join(self.aliases)}."
        )


##
## STATE
##


class StateError(DeploygraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class TamperedDataError(StateError):
    def __init__(self) -> None:
        super().__init__("Deserialization failed due to signature mismatch.")
