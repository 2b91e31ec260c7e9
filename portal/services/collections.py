# portal/services/collections.py

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from portal.core.errors import UnknownCollection
from portal.core.permissions import ResourceName


# ============================================================================
# COLLECTION REGISTRY
# ============================================================================
@dataclass(frozen=True)
class CollectionSpec:
    name: str
    resource: ResourceName   # permission gate
    path: str                # data API path
    create_path: Optional[str] = None


COLLECTIONS: Dict[str, CollectionSpec] = {
    spec.name: spec
    for spec in (
        CollectionSpec("users", ResourceName.AccessControl, "/users"),
        CollectionSpec("contacts", ResourceName.Contacts, "/data/contacts"),
        CollectionSpec("leads", ResourceName.CRM, "/data/crm/leads"),
        CollectionSpec("quotation_templates", ResourceName.CRM, "/data/crm/quotation-templates"),
        CollectionSpec("invoices", ResourceName.Accounting, "/data/accounting/transactions",
                       create_path="/data/accounting/invoices"),
        CollectionSpec("visitors", ResourceName.Reception, "/data/reception/visitors",
                       create_path="/data/reception/visitors/check-in"),
        CollectionSpec("tasks", ResourceName.Todo, "/data/tasks"),
        CollectionSpec("events", ResourceName.Calendar, "/data/calendar/events"),
        CollectionSpec("channels", ResourceName.Discuss, "/data/discuss/channels"),
        CollectionSpec("coupons", ResourceName.LMS, "/data/lms/coupons"),
        CollectionSpec("courses", ResourceName.LMS, "/data/lms/courses"),
    )
}


def get_collection_spec(name: str) -> CollectionSpec:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise UnknownCollection(name) from None


# ============================================================================
# LOCAL CANONICAL STATE
# ============================================================================
Subscriber = Callable[[str, List[Any]], None]


class CollectionStore:
    """
    Last server-declared truth for each collection of one console session.

    Collections are only ever replaced whole. With `discard_stale` on, each
    write takes a sequence number at dispatch time and a response carrying
    an older number than the one already applied is dropped. With it off,
    whichever response completes last wins.
    """

    def __init__(self, discard_stale: bool = False):
        self.discard_stale = discard_stale
        self._items: Dict[str, List[Any]] = {}
        self._issued: Dict[str, int] = defaultdict(int)
        self._applied: Dict[str, int] = {}
        self._subscribers: List[Subscriber] = []

    def get(self, name: str) -> List[Any]:
        return list(self._items.get(name, []))

    def snapshot(self) -> Dict[str, List[Any]]:
        return {name: list(items) for name, items in self._items.items()}

    def next_sequence(self, name: str) -> int:
        self._issued[name] += 1
        return self._issued[name]

    def applied_sequence(self, name: str) -> int:
        return self._applied.get(name, 0)

    def replace(self, name: str, items: List[Any], sequence: Optional[int] = None) -> bool:
        if self.discard_stale and sequence is not None and sequence < self.applied_sequence(name):
            logger.debug(
                "Discarding stale '{}' response (seq {} < applied {})",
                name, sequence, self.applied_sequence(name),
            )
            return False

        self._items[name] = list(items)
        if sequence is not None:
            self._applied[name] = max(self.applied_sequence(name), sequence)

        for subscriber in list(self._subscribers):
            try:
                subscriber(name, self.get(name))
            except Exception:
                logger.exception("Collection subscriber failed for '{}'", name)
        return True

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def clear(self) -> None:
        self._items.clear()
        self._issued.clear()
        self._applied.clear()
