from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable, Mapping


class ExecutionPlan(BaseModel):
    """
    Tracks the outstanding dependency count of every alias. An alias is ready once
    its count reaches zero, and completing it decrements the count of each alias that
    depends on it.
    """

    uuid: UUID = Field(default_factory=uuid4)
    pending: dict[str, int]
    dependents: dict[str, set[str]]
    completed: set[str] = Field(default_factory=set)
    round: int = 0

    @classmethod
    def from_dependencies(
        cls, dependencies: "Mapping[str, Iterable[str]]"
    ) -> "ExecutionPlan":
        pending: dict[str, int] = {}
        dependents: dict[str, set[str]] = {alias: set() for alias in dependencies}

        for alias, alias_dependencies in dependencies.items():
            unique = set(alias_dependencies)
            pending[alias] = len(unique)

            for dependency in unique:
                dependents[dependency].add(alias)

        return cls(pending=pending, dependents=dependents)

    @property
    def done(self) -> bool:
        return len(self.completed) == len(self.pending)

    @property
    def remaining(self) -> set[str]:
        return self.pending.keys() - self.completed

    def ready(self) -> set[str]:
        return {alias for alias in self.remaining if self.pending[alias] == 0}

    def complete(self, aliases: "Iterable[str]") -> None:
        for alias in aliases:
            if alias in self.completed:
                continue

            self.completed.add(alias)
            for dependent in self.dependents[alias]:
                self.pending[dependent] -= 1

        self.round += 1
