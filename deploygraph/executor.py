import logging
from functools import partial
from typing import TYPE_CHECKING

import anyio

from .component import DEFAULT_OPERATION
from .exceptions import ComponentInvocationError, StalledExecutionError
from .references import resolve_references
from .status import InvocationOutcome, LoggingStatusSink

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Awaitable, Callable, Iterable, Mapping
    from typing import Any

    from .component import ComponentDescriptor, ComponentInstance
    from .graph import DependencyGraph
    from .loader import ComponentLoader
    from .status import StatusSink

logger = logging.getLogger(__name__)


async def run_settled(
    calls: "Mapping[str, Callable[[], Awaitable[Any]]]",
) -> tuple[dict[str, "Any"], dict[str, Exception]]:
    """
    Run every call concurrently and wait for all of them to settle. A failing call
    does not cancel its siblings; its exception is collected instead.
    """
    results: dict[str, "Any"] = {}
    errors: dict[str, Exception] = {}

    async def _run(key: str, fn: "Callable[[], Awaitable[Any]]") -> None:
        try:
            results[key] = await fn()
        except Exception as e:
            errors[key] = e

    async with anyio.create_task_group() as tg:
        for key, fn in calls.items():
            tg.start_soon(_run, key, fn, name=key)

    return results, errors


def _record(sink: "StatusSink", outcome: InvocationOutcome) -> None:
    try:
        sink.record(outcome)
    except Exception:
        logger.exception(
            "Status sink failed to record operation '%s' of '%s'.",
            outcome.operation,
            outcome.alias,
        )


async def invoke_recorded(
    instance: "ComponentInstance",
    operation: str,
    sink: "StatusSink",
    inputs: "Any" = None,
) -> "Any":
    """Invoke an operation and report its outcome to the sink."""
    started = anyio.current_time()

    try:
        result = await instance.invoke(operation, inputs)
    except Exception as e:
        _record(
            sink,
            InvocationOutcome(
                alias=instance.alias,
                operation=operation,
                success=False,
                duration=anyio.current_time() - started,
                error=f"{type(e).__name__}: {e}",
            ),
        )
        raise

    _record(
        sink,
        InvocationOutcome(
            alias=instance.alias,
            operation=operation,
            success=True,
            duration=anyio.current_time() - started,
        ),
    )
    return result


class Executor:
    """
    Runs a resolved dependency graph in rounds. Every round deploys all components
    whose dependencies have completed, concurrently, and publishes their outputs for
    the components of the following rounds.
    """

    def __init__(
        self, loader: "ComponentLoader", sink: "StatusSink | None" = None
    ) -> None:
        self.loader = loader
        self.sink: "StatusSink" = sink or LoggingStatusSink()

    async def execute(self, graph: "DependencyGraph") -> dict[str, "Any"]:
        """Deploy every component of the graph, returning each alias' outputs."""
        # copied so the same resolved graph can be executed again
        plan = graph.execution_plan.model_copy(deep=True)
        outputs: dict[str, "Any"] = {}

        while not plan.done:
            ready = plan.ready()
            if not ready:
                raise StalledExecutionError(plan.remaining)

            self.sink.debug(f"Executing round {plan.round + 1}: {sorted(ready)}.")
            await self.dispatch(graph.components, ready, outputs)

            plan.complete(ready)

        logger.debug(
            "Executed %d component(s) in %d round(s).", len(outputs), plan.round
        )
        return outputs

    async def dispatch(
        self,
        components: "Mapping[str, ComponentDescriptor]",
        aliases: "Iterable[str]",
        outputs: dict[str, "Any"],
    ) -> None:
        _, errors = await run_settled(
            {
                alias: partial(self._deploy, components[alias], outputs)
                for alias in sorted(aliases)
            }
        )

        if errors:
            raise ComponentInvocationError(DEFAULT_OPERATION, errors, outputs)

    async def _deploy(
        self, descriptor: "ComponentDescriptor", outputs: dict[str, "Any"]
    ) -> None:
        # only outputs of previous rounds are referenced
        inputs = resolve_references(descriptor.inputs, outputs)
        instance = await self.loader.load(descriptor.ref, descriptor.alias)

        self.sink.status("Deploying", descriptor.alias)
        result = await invoke_recorded(instance, DEFAULT_OPERATION, self.sink, inputs)

        descriptor.inputs = inputs
        descriptor.outputs = {} if result is None else result
        outputs[descriptor.alias] = descriptor.outputs
