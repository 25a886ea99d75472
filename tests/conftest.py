import pytest

from deploygraph import ComponentLoader, Deployer, InMemoryStateStore, InvocationOutcome

from .components import ledger


class RecordingSink:
    def __init__(self) -> None:
        self.statuses: list[tuple[str, str | None]] = []
        self.messages: list[str] = []
        self.outcomes: list[InvocationOutcome] = []

    def status(self, phase: str, alias: str | None = None) -> None:
        self.statuses.append((phase, alias))

    def debug(self, message: str) -> None:
        self.messages.append(message)

    def record(self, outcome: InvocationOutcome) -> None:
        self.outcomes.append(outcome)


@pytest.fixture(autouse=True)
def reset_ledger():
    ledger.reset()
    yield
    ledger.reset()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def loader():
    return ComponentLoader()


@pytest.fixture
def deployer(store, sink):
    return Deployer(store=store, sink=sink)


@pytest.fixture(
    params=[
        pytest.param(("asyncio", {"use_uvloop": False}), id="asyncio"),
        pytest.param(
            ("trio", {"restrict_keyboard_interrupt_to_checkpoints": True}), id="trio"
        ),
    ],
    scope="session",
)
def anyio_backend(request):
    return request.param
