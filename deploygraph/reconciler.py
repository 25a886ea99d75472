import logging
from functools import partial
from typing import TYPE_CHECKING

from .component import REMOVE_OPERATION
from .exceptions import ComponentInvocationError
from .executor import invoke_recorded, run_settled
from .status import LoggingStatusSink

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Mapping

    from .loader import ComponentLoader
    from .state import StateStore
    from .status import StatusSink

logger = logging.getLogger(__name__)


class StateReconciler:
    """
    Tears down the components of a previous deployment that are no longer desired,
    then commits the desired alias to component mapping as the new state.
    """

    def __init__(
        self,
        store: "StateStore",
        loader: "ComponentLoader",
        sink: "StatusSink | None" = None,
    ) -> None:
        self.store = store
        self.loader = loader
        self.sink: "StatusSink" = sink or LoggingStatusSink()

    async def reconcile(
        self, instance_id: str, desired: "Mapping[str, str]"
    ) -> list[str]:
        """
        Remove every previously deployed alias missing from `desired` and commit
        `desired`. Returns the removed aliases. If any teardown fails, every other
        teardown still runs to completion but the state is left uncommitted.
        """
        previous = await self.store.get_state(instance_id)
        stale = sorted(previous.keys() - desired.keys())

        if stale:
            self.sink.debug(f"Removing stale components: {stale}.")

            _, errors = await run_settled(
                {alias: partial(self._remove, alias, previous[alias]) for alias in stale}
            )
            if errors:
                raise ComponentInvocationError(REMOVE_OPERATION, errors)

        await self.store.commit_state(instance_id, dict(desired))
        logger.info(
            "Committed state of '%s' with %d component(s), %d removed.",
            instance_id,
            len(desired),
            len(stale),
        )

        return stale

    async def _remove(self, alias: str, ref: str) -> None:
        instance = await self.loader.load(ref, alias)

        self.sink.status("Removing", alias)
        await invoke_recorded(instance, REMOVE_OPERATION, self.sink)
