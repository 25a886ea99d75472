import importlib.util
import logging
from hashlib import sha1
from importlib.metadata import entry_points
from pathlib import Path
from typing import TYPE_CHECKING

from .component import Component, ComponentInstance
from .config import Config
from .exceptions import MissingEntryPointError, UnknownComponentError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

LOCAL_PREFIXES = ("./", "../", "/", "~")


class ComponentLoader:
    """
    Turns component references into runnable component instances.

    References starting with `./`, `../`, `/` or `~` are directories on the local
    filesystem, relative to `base_dir`, whose entry point file must export a
    module-level `component`. Any other reference names a registered `Component`
    or a `deploygraph.components` package entry point.
    """

    def __init__(self, config: Config | None = None, base_dir: Path | None = None) -> None:
        self.config = config or Config()
        self.base_dir = base_dir or Path.cwd()
        self._resolved: dict[str, Component] = {}

    @staticmethod
    def is_local(ref: str) -> bool:
        return ref.startswith(LOCAL_PREFIXES)

    def qualify(self, ref: str) -> str:
        """Return `ref` with a local directory made absolute, so it loads from anywhere."""
        return str(self._directory(ref)) if self.is_local(ref) else ref

    def rooted(self, base_dir: Path | None) -> "ComponentLoader":
        """Return a loader resolving local references against `base_dir`."""
        if base_dir is None or base_dir == self.base_dir:
            return self

        return type(self)(self.config, base_dir)

    def resolve_component_refs(self, refs: "Iterable[str]") -> dict[str, Component]:
        return {ref: self._resolve(ref) for ref in refs}

    async def load(self, ref: str, alias: str) -> ComponentInstance:
        return ComponentInstance(component=self._resolve(ref), alias=alias)

    def _resolve(self, ref: str) -> Component:
        key = self.qualify(ref)
        if (component := self._resolved.get(key)) is not None:
            return component

        component = self._load_local(ref) if self.is_local(ref) else self._lookup(ref)
        self._resolved[key] = component
        return component

    def _directory(self, ref: str) -> Path:
        return (self.base_dir / Path(ref).expanduser()).resolve()

    def _load_local(self, ref: str) -> Component:
        entry_point = self._directory(ref) / self.config.component_entry_point

        if not entry_point.is_file():
            raise MissingEntryPointError(ref, str(entry_point))

        logger.debug("Loading local component '%s' from '%s'.", ref, entry_point)

        module_name = f"_deploygraph_local_{sha1(str(entry_point).encode()).hexdigest()}"
        spec = importlib.util.spec_from_file_location(module_name, entry_point)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        component = getattr(module, "component", None)
        if not isinstance(component, Component):
            raise MissingEntryPointError(ref, str(entry_point))

        return component

    def _lookup(self, ref: str) -> Component:
        if (component := Component.registered(ref)) is not None:
            return component

        for entry_point in entry_points(group=self.config.entry_point_group, name=ref):
            component = entry_point.load()
            if isinstance(component, Component):
                logger.debug("Loaded component '%s' from '%s'.", ref, entry_point.value)
                return component

        raise UnknownComponentError(ref)
