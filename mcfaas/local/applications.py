import weakref
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from mcfaas.ipc import ApplicationDescriptor, MetadataMessage

if TYPE_CHECKING:
    from mcfaas.local.supervisor import WorkerHandle

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplicationEntry:
    """
    An application reported by a worker.

    The owner is held weakly: the supervisor owns the handle, and the entry
    only points at it for routing.
    """

    name: str
    metadata: ApplicationDescriptor
    _owner_ref: "weakref.ReferenceType[WorkerHandle]"

    @property
    def owner(self) -> Optional["WorkerHandle"]:
        return self._owner_ref()


class ApplicationRegistry:
    """
    Maps application names to their metadata and owning worker.

    Every operation holds the registry lock for a single dict operation, so an
    update for a name is never seen half-written and concurrent writes to the
    same name serialize (last writer wins).
    """

    def __init__(self) -> None:
        self._entries: Dict[str, ApplicationEntry] = {}
        self._lock = threading.Lock()

    def apply(self, message: MetadataMessage, owner: "WorkerHandle") -> Set[str]:
        """
        Writes or overwrites an entry for every application in the message.

        :param message: A validated metadata message.
        :param owner: The worker that reported it.
        :return: The names that were written.
        """
        owner_ref = weakref.ref(owner)
        touched: Set[str] = set()
        for name, descriptor in message.applications.items():
            entry = ApplicationEntry(name=name, metadata=descriptor, _owner_ref=owner_ref)
            with self._lock:
                previous = self._entries.get(name)
                self._entries[name] = entry
            if previous is not None and previous.owner is not owner:
                log.info(f"Application '{name}' is now served by worker {owner.pid} (replacing a previous worker).")
            touched.add(name)
        return touched

    def get(self, name: str) -> Optional[ApplicationEntry]:
        with self._lock:
            return self._entries.get(name)

    def names(self) -> Set[str]:
        with self._lock:
            return set(self._entries)

    def entries(self) -> List[ApplicationEntry]:
        with self._lock:
            return list(self._entries.values())

    def remove_owned_by(self, owner: "WorkerHandle") -> Set[str]:
        """Drops every entry whose current owner is `owner`."""
        with self._lock:
            removed = {name for name, entry in self._entries.items() if entry.owner is owner}
            for name in removed:
                del self._entries[name]
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
