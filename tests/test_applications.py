"""Tests for the application registry."""

import gc
import threading

from mcfaas.ipc import ApplicationDescriptor, MetadataMessage
from mcfaas.local.applications import ApplicationRegistry
from mcfaas.local.supervisor import WorkerHandle
from tests.conftest import fake_process


def _owner(pid: int, deployment_id: str = "demo") -> WorkerHandle:
    return WorkerHandle(fake_process(pid), deployment_id, channel=None)


def _metadata(**applications) -> MetadataMessage:
    return MetadataMessage(applications={
        name: ApplicationDescriptor(language_id=language_id, path=".", scripts=[f"{name}.{language_id}"])
        for name, language_id in applications.items()
    })


class TestApply:

    def test_returns_touched_names(self):
        registry = ApplicationRegistry()
        owner = _owner(1)
        assert registry.apply(_metadata(a="py", b="node"), owner) == {"a", "b"}
        assert registry.names() == {"a", "b"}
        assert registry.get("a").owner is owner
        assert len(registry) == 2

    def test_last_writer_wins(self):
        registry = ApplicationRegistry()
        first, second = _owner(1), _owner(2)
        registry.apply(_metadata(app="py"), first)
        registry.apply(_metadata(app="node"), second)
        entry = registry.get("app")
        assert entry.metadata.language_id == "node"
        assert entry.owner is second
        assert len(registry) == 1

    def test_unknown_name(self):
        assert ApplicationRegistry().get("nope") is None

    def test_owner_is_held_weakly(self):
        registry = ApplicationRegistry()
        owner = _owner(1)
        registry.apply(_metadata(app="py"), owner)
        del owner
        gc.collect()
        assert registry.get("app").owner is None

    def test_concurrent_writers_to_distinct_names(self):
        registry = ApplicationRegistry()
        owners = [_owner(pid) for pid in range(16)]

        def write(owner):
            for i in range(50):
                registry.apply(_metadata(**{f"app-{owner.pid}-{i}": "py"}), owner)

        threads = [threading.Thread(target=write, args=(owner,)) for owner in owners]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(registry) == 16 * 50
        assert all(e.owner.pid == int(e.name.split("-")[1]) for e in registry.entries())

    def test_concurrent_writers_to_the_same_name(self):
        registry = ApplicationRegistry()
        writers = 16
        owners = [_owner(pid) for pid in range(writers)]
        languages = {owner.pid: f"lang{owner.pid}" for owner in owners}
        barrier = threading.Barrier(writers)

        def write(owner):
            barrier.wait()
            for _ in range(50):
                registry.apply(_metadata(shared=languages[owner.pid]), owner)

        threads = [threading.Thread(target=write, args=(owner,)) for owner in owners]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 1
        [entry] = registry.entries()
        assert entry.name == "shared"
        assert entry.owner in owners
        assert entry.metadata.language_id == languages[entry.owner.pid]
        assert entry.metadata.scripts == [f"shared.{languages[entry.owner.pid]}"]


class TestRemoveOwnedBy:

    def test_removes_only_current_owner_entries(self):
        registry = ApplicationRegistry()
        first, second = _owner(1), _owner(2)
        registry.apply(_metadata(a="py", shared="py"), first)
        registry.apply(_metadata(shared="node", b="py"), second)
        assert registry.remove_owned_by(first) == {"a"}
        assert registry.names() == {"shared", "b"}
        assert registry.remove_owned_by(second) == {"shared", "b"}
        assert len(registry) == 0
