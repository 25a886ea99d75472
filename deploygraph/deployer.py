from functools import partial
from typing import TYPE_CHECKING

from .config import Config
from .exceptions import (
    ComponentInvocationError,
    OperationNotImplementedError,
    UndeclaredComponentError,
)
from .executor import Executor, invoke_recorded, run_settled
from .graph import DependencyGraph
from .loader import ComponentLoader
from .reconciler import StateReconciler
from .state import InMemoryStateStore
from .status import LoggingStatusSink
from .template import load_template

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable
    from pathlib import Path
    from typing import Any

    from .state import StateStore
    from .status import StatusSink
    from .template import Template, TemplateSource


class Deployer:
    """
    Deploys templates into named deployment instances.

    ```python
    deployer = Deployer(store=FileStateStore(".deploygraph"))
    outputs = await deployer.deploy("template.yml", "production")
    ```
    """

    def __init__(
        self,
        store: "StateStore | None" = None,
        loader: ComponentLoader | None = None,
        sink: "StatusSink | None" = None,
        **settings: "Any",
    ) -> None:
        self.config = Config(**settings)

        self.store: "StateStore" = store or InMemoryStateStore()
        self.sink: "StatusSink" = sink or LoggingStatusSink()
        self._loader = loader

    def loader(self, base_dir: "Path | None" = None) -> ComponentLoader:
        if self._loader is None:
            return ComponentLoader(self.config, base_dir)

        return self._loader.rooted(base_dir)

    def _prepare(self, source: "TemplateSource | Template") -> "Template":
        template = load_template(source)

        self.sink.debug("Resolving the template's static variables.")
        return template.resolve(self.config.max_resolution_passes)

    async def deploy(
        self, template: "TemplateSource | Template", instance_id: str
    ) -> dict[str, "Any"]:
        """
        Deploy a template, removing any component of the instance's previous
        deployment that the template no longer declares. Returns each alias' outputs.
        """
        self.sink.status("Deploying")

        resolved = self._prepare(template)

        self.sink.debug("Collecting components from the template.")
        components = resolved.components()

        self.sink.debug("Resolving component references.")
        loader = self.loader(resolved.base_dir)
        loader.resolve_component_refs({c.ref for c in components.values()})

        self.sink.debug("Analyzing the template's component dependencies.")
        graph = DependencyGraph.from_components(components).resolve()
        self.sink.debug(f"Component graph:\n{graph.topology}")

        self.sink.debug("Syncing template state.")
        await StateReconciler(self.store, loader, self.sink).reconcile(
            instance_id,
            {alias: loader.qualify(c.ref) for alias, c in components.items()},
        )

        self.sink.debug("Executing the template's component graph.")
        return await Executor(loader, self.sink).execute(graph)

    async def remove(
        self, instance_id: str, base_dir: "Path | None" = None
    ) -> dict[str, "Any"]:
        """Remove every component of a deployment instance."""
        self.sink.status("Removing")

        self.sink.debug("Flushing template state and removing all components.")
        await StateReconciler(self.store, self.loader(base_dir), self.sink).reconcile(
            instance_id, {}
        )

        return {}

    async def invoke(
        self,
        operation: str,
        template: "TemplateSource | Template",
        aliases: "Iterable[str] | None" = None,
        inputs: "Any" = None,
    ) -> dict[str, "Any"]:
        """
        Invoke a named operation on some (by default all) components of a template.
        Every component is checked for the operation before any of them runs.
        """
        resolved = self._prepare(template)
        components = resolved.components()

        targets = sorted(components) if aliases is None else list(dict.fromkeys(aliases))
        for alias in targets:
            if alias not in components:
                raise UndeclaredComponentError(alias)

        loader = self.loader(resolved.base_dir)
        instances = {
            alias: await loader.load(components[alias].ref, alias) for alias in targets
        }

        if missing := [
            alias for alias, instance in instances.items()
            if not instance.implements(operation)
        ]:
            raise OperationNotImplementedError(operation, missing)

        for alias in targets:
            self.sink.status(f"Invoking '{operation}'", alias)

        results, errors = await run_settled(
            {
                alias: partial(invoke_recorded, instance, operation, self.sink, inputs)
                for alias, instance in instances.items()
            }
        )
        if errors:
            raise ComponentInvocationError(operation, errors, results)

        return results
