from __future__ import annotations

from typing import Callable, Dict, List

from db import crud
from db.models import Order, Product, Transaction, User
from db.store import DocumentStore, Snapshot, Unsubscribe
from utils.logger import get_logger

_logger = get_logger(__name__)

WATCHED = (crud.USERS, crud.PRODUCTS, crud.ORDERS, crud.TRANSACTIONS)

ProjectionListener = Callable[[str], None]


class Projection:
    """
    One in-memory view of every watched collection, fed by a single
    subscription per collection. ``revision[c]`` counts delivered snapshots,
    so readers can tell whether what they rendered is current.

    Contents may lag the store by one delivery; they are never partially applied.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self.snapshots: Dict[str, Snapshot] = {c: [] for c in WATCHED}
        self.revision: Dict[str, int] = {c: 0 for c in WATCHED}
        self._unsubscribes: List[Unsubscribe] = []
        self._listeners: List[ProjectionListener] = []

    @property
    def loading(self) -> bool:
        return self.revision[crud.USERS] == 0

    def start(self) -> None:
        if self._unsubscribes:
            return
        for collection in WATCHED:
            self._unsubscribes.append(
                self.store.subscribe(collection, self._receiver(collection))
            )

    def stop(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()

    def add_listener(self, listener: ProjectionListener) -> None:
        self._listeners.append(listener)

    def _receiver(self, collection: str) -> Callable[[Snapshot], None]:
        def receive(snapshot: Snapshot) -> None:
            self.snapshots[collection] = snapshot
            self.revision[collection] += 1
            _logger.debug(
                f"{collection}: {len(snapshot)} doc(s), rev {self.revision[collection]}"
            )
            for listener in list(self._listeners):
                listener(collection)

        return receive

    # typed views

    @property
    def users(self) -> List[User]:
        return [User.from_doc(d) for d in self.snapshots[crud.USERS]]

    @property
    def products(self) -> List[Product]:
        return [Product.from_doc(d) for d in self.snapshots[crud.PRODUCTS]]

    @property
    def orders(self) -> List[Order]:
        return [Order.from_doc(d) for d in self.snapshots[crud.ORDERS]]

    @property
    def transactions(self) -> List[Transaction]:
        return [Transaction.from_doc(d) for d in self.snapshots[crud.TRANSACTIONS]]

    def orders_for(self, user_id: str) -> List[Order]:
        orders = [o for o in self.orders if o.user_id == user_id]
        orders.sort(key=lambda o: o.purchase_date, reverse=True)
        return orders
