"""
Persisted deployment state.

A deployment instance's state maps every deployed alias to the component reference
it was deployed with. Stores only need two operations, and a commit must replace the
whole mapping at once: no reader may observe a partially written mapping.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING
from uuid import uuid4

import anyio
from anyio.lowlevel import RunVar
from anyio_atexit import run_finally
from glide import GlideClient, GlideClusterClient, GlideClusterClientConfiguration
from pydantic import TypeAdapter, ValidationError

from .config import Config
from .exceptions import StateError
from .serialization import SigningZstdSerializer

if TYPE_CHECKING:  # pragma: no cover
    import os
    from collections.abc import Mapping

    from glide import GlideClientConfiguration, TGlideClient

    from .serialization import Serializer

logger = logging.getLogger(__name__)

_STATE_ADAPTER = TypeAdapter(dict[str, str])


def _validate_state(instance_id: str, state: object) -> dict[str, str]:
    try:
        return _STATE_ADAPTER.validate_python(state)
    except ValidationError as e:
        raise StateError(f"Persisted state of '{instance_id}' is corrupt: {e}") from e


class StateStore(ABC):
    @abstractmethod
    async def get_state(self, instance_id: str) -> dict[str, str]:
        """Return the last committed alias to component mapping, or an empty one."""
        raise NotImplementedError()

    @abstractmethod
    async def commit_state(self, instance_id: str, state: "Mapping[str, str]") -> None:
        """Atomically replace the committed mapping."""
        raise NotImplementedError()


class InMemoryStateStore(StateStore):
    def __init__(self, initial: "Mapping[str, Mapping[str, str]] | None" = None) -> None:
        self._states: dict[str, dict[str, str]] = {
            instance_id: dict(state) for instance_id, state in (initial or {}).items()
        }

    async def get_state(self, instance_id: str) -> dict[str, str]:
        return dict(self._states.get(instance_id, {}))

    async def commit_state(self, instance_id: str, state: "Mapping[str, str]") -> None:
        self._states[instance_id] = _validate_state(instance_id, dict(state))


class FileStateStore(StateStore):
    """One JSON document per instance, replaced through an atomic rename."""

    def __init__(self, root: "str | os.PathLike[str]") -> None:
        self.root = anyio.Path(root)

    def path(self, instance_id: str) -> anyio.Path:
        if not instance_id or "/" in instance_id or instance_id in {".", ".."}:
            raise StateError(f"'{instance_id}' is not a valid instance id.")

        return self.root / f"{instance_id}.json"

    async def get_state(self, instance_id: str) -> dict[str, str]:
        path = self.path(instance_id)
        if not await path.exists():
            return {}

        try:
            data = json.loads(await path.read_text())
        except json.JSONDecodeError as e:
            raise StateError(f"Persisted state of '{instance_id}' is corrupt.") from e

        return _validate_state(instance_id, data)

    async def commit_state(self, instance_id: str, state: "Mapping[str, str]") -> None:
        path = self.path(instance_id)
        state = _validate_state(instance_id, dict(state))

        await self.root.mkdir(parents=True, exist_ok=True)

        staging = path.with_name(f".{path.name}.{uuid4().hex}")
        await staging.write_text(json.dumps(state, indent=2, sort_keys=True))
        await staging.replace(path)

        logger.debug("Committed state of '%s' to '%s'.", instance_id, path)


class ValkeyStateStore(StateStore):
    """Stores each instance's state under a single key of a Valkey (or Redis) server."""

    def __init__(
        self,
        glide_config: "GlideClientConfiguration | GlideClusterClientConfiguration",
        config: Config | None = None,
        serializer: "Serializer | None" = None,
    ) -> None:
        self.config = config or Config()

        self._glide_config = glide_config
        self._client_var: RunVar["TGlideClient"] = RunVar("_client_var")

        self.serializer: "Serializer" = serializer or SigningZstdSerializer(
            self.config.serialization_secret
        )

    def key(self, instance_id: str) -> str:
        return f"{self.config.state_key_prefix}:instance:{instance_id}:components"

    async def new_glide_client(self) -> "TGlideClient":
        return await (
            GlideClusterClient
            if isinstance(self._glide_config, GlideClusterClientConfiguration)
            else GlideClient
        ).create(self._glide_config)

    async def client(self) -> "TGlideClient":
        try:
            return self._client_var.get()
        except LookupError:
            client = await self.new_glide_client()
            run_finally(client.close)

            self._client_var.set(client)
            return client

    async def get_state(self, instance_id: str) -> dict[str, str]:
        data: bytes | None = await (await self.client()).get(self.key(instance_id))
        if data is None:
            return {}

        return _validate_state(instance_id, self.serializer.load(data))

    async def commit_state(self, instance_id: str, state: "Mapping[str, str]") -> None:
        state = _validate_state(instance_id, dict(state))

        # a single SET replaces the value atomically
        await (await self.client()).set(self.key(instance_id), self.serializer.dump(state))
