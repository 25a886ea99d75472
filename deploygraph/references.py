"""
Reference expressions.

A reference is a `${path.to.value}` token inside any string of a data tree. The
path is dereferenced against a context mapping: mapping keys by name, list items
by integer index. `${env.NAME}` always reads from the process environment; an
unset variable resolves to an empty string.

A string that consists of exactly one reference is replaced by the referenced value
with its type preserved. References embedded in a larger string are spliced in and
must therefore resolve to strings.
"""

import logging
import os
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING

from .exceptions import (
    InvalidReferenceError,
    NonStringInterpolationError,
    UnresolvableTemplateError,
)

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable, Iterator
    from typing import Any

logger = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(r"\$\{(\w*:?[\w.-]+)\}")
ENV_PREFIX = "env."

_MISSING = object()


def is_component_declaration(value: "Any") -> bool:
    return isinstance(value, Mapping) and "component" in value


def find_references(value: "Any") -> list[str]:
    """Return the path of every reference expression found in a data tree."""
    return [
        path for string in _iter_strings(value)
        for path in REFERENCE_PATTERN.findall(string)
    ]


def _iter_strings(value: "Any") -> "Iterator[str]":
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _iter_strings(item)
    elif isinstance(value, list | tuple):
        for item in value:
            yield from _iter_strings(item)


def lookup(path: str, context: "Mapping[str, Any]") -> "Any":
    if path.startswith(ENV_PREFIX):
        return os.environ.get(path.removeprefix(ENV_PREFIX), "")

    current: "Any" = context
    for segment in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(segment, _MISSING)
        elif isinstance(current, list | tuple) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else _MISSING
        else:
            return _MISSING

        if current is _MISSING:
            return _MISSING

    return current


class _Resolver:
    """A single resolution pass over a data tree."""

    def __init__(
        self, context: "Mapping[str, Any]", deferred: "Iterable[str]" = ()
    ) -> None:
        self.context = context
        self.deferred = frozenset(deferred)
        self.substituted: list[str] = []

    def resolve(self, value: "Any") -> "Any":
        if isinstance(value, str):
            return self._resolve_string(value)
        elif isinstance(value, Mapping):
            return {key: self.resolve(item) for key, item in value.items()}
        elif isinstance(value, list):
            return [self.resolve(item) for item in value]
        elif isinstance(value, tuple):
            return tuple(self.resolve(item) for item in value)

        return value

    def _resolve_string(self, value: str) -> "Any":
        if match := REFERENCE_PATTERN.fullmatch(value):
            return self._dereference(match)

        return REFERENCE_PATTERN.sub(self._splice, value)

    def _splice(self, match: "re.Match[str]") -> str:
        referenced = self._dereference(match)

        if not isinstance(referenced, str):
            raise NonStringInterpolationError(match.group(0), referenced)

        return referenced

    def _dereference(self, match: "re.Match[str]") -> "Any":
        expression, path = match.group(0), match.group(1)

        if not path.startswith(ENV_PREFIX):
            top_level = path.split(".", 1)[0]

            # resolved later, against live component outputs
            if top_level in self.deferred:
                return expression
            elif top_level not in self.context:
                raise InvalidReferenceError(expression)

        referenced = lookup(path, self.context)
        if referenced is _MISSING:
            raise InvalidReferenceError(expression)

        self.substituted.append(expression)
        return referenced


def resolve_references(value: "Any", context: "Mapping[str, Any]") -> "Any":
    """
    Resolve every reference in `value` against `context`, returning a tree of the
    same shape. Used at execution time, where `context` maps each completed alias to
    its outputs.
    """
    return _Resolver(context).resolve(value)


def resolve_template(
    data: "Mapping[str, Any]", max_passes: int = 10
) -> dict[str, "Any"]:
    """
    Resolve the static variables of a template against the template itself.

    References into component declarations are left in place. Since resolving one
    variable may expose another, passes are repeated until one performs no
    substitution, up to `max_passes`.
    """
    components = {key for key, value in data.items() if is_component_declaration(value)}
    current = dict(data)

    for current_pass in range(1, max_passes + 1):
        resolver = _Resolver(current, deferred=components)
        resolved = resolver.resolve(current)

        if not resolver.substituted:
            logger.debug("Template resolved after %d pass(es).", current_pass)
            return resolved
        elif resolved == current:
            # substitutions that change nothing will never converge
            raise UnresolvableTemplateError(resolver.substituted, current_pass)

        current = resolved

    raise UnresolvableTemplateError(resolver.substituted, max_passes)
