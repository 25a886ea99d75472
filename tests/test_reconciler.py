import anyio
import pytest

from deploygraph import InMemoryStateStore, StateReconciler
from deploygraph.exceptions import ComponentInvocationError

from .components import ledger


@pytest.fixture
def reconciler(store, loader, sink):
    return StateReconciler(store, loader, sink)


@pytest.mark.anyio
async def test_reconcile_removes_stale_components(reconciler, store, sink):
    await store.commit_state("dev", {"a": "test-echo", "b": "test-silent"})

    removed = await reconciler.reconcile("dev", {"a": "test-echo"})

    assert removed == ["b"]
    assert ledger.aliases("remove") == ["b"]
    assert await store.get_state("dev") == {"a": "test-echo"}
    assert ("Removing", "b") in sink.statuses


@pytest.mark.anyio
async def test_reconcile_first_deployment(reconciler, store):
    removed = await reconciler.reconcile("dev", {"a": "test-echo", "b": "test-echo"})

    assert removed == []
    assert ledger.calls == []
    assert await store.get_state("dev") == {"a": "test-echo", "b": "test-echo"}


@pytest.mark.anyio
async def test_reconcile_replaces_changed_references(reconciler, store):
    await store.commit_state("dev", {"a": "test-echo"})

    assert await reconciler.reconcile("dev", {"a": "test-silent"}) == []
    assert await store.get_state("dev") == {"a": "test-silent"}


@pytest.mark.anyio
async def test_reconcile_remove_everything(reconciler, store):
    await store.commit_state(
        "dev", {"a": "test-echo", "b": "test-silent", "c": "test-slow"}
    )

    with anyio.fail_after(1):
        removed = await reconciler.reconcile("dev", {})

    assert removed == ["a", "b", "c"]
    assert sorted(ledger.aliases("remove")) == ["a", "b", "c"]
    assert await store.get_state("dev") == {}


@pytest.mark.anyio
async def test_reconcile_instances_are_isolated(reconciler, store):
    await store.commit_state("dev", {"a": "test-echo"})
    await store.commit_state("prod", {"a": "test-echo", "b": "test-echo"})

    await reconciler.reconcile("dev", {})

    assert await store.get_state("prod") == {"a": "test-echo", "b": "test-echo"}


@pytest.mark.anyio
async def test_failed_teardown_is_not_committed(loader, sink):
    previous = {"bad": "test-failing", "slow": "test-slow", "kept": "test-echo"}
    store = InMemoryStateStore({"dev": previous})
    reconciler = StateReconciler(store, loader, sink)

    with anyio.fail_after(1):
        with pytest.raises(ComponentInvocationError) as exc_info:
            await reconciler.reconcile("dev", {"kept": "test-echo"})

    assert exc_info.value.operation == "remove"
    assert set(exc_info.value.errors) == {"bad"}

    # the sibling teardown still ran to completion
    assert sorted(ledger.aliases("remove")) == ["bad", "slow"]
    assert await store.get_state("dev") == previous
