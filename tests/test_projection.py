import os
import sys
import tempfile
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import crud  # noqa: E402
from db.local_store import LocalStore  # noqa: E402
from db.sqlite_store import SqliteStore  # noqa: E402
from services.projection import Projection  # noqa: E402


class LocalProjectionTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = LocalStore(None)
        self.projection = Projection(self.store)
        self.changes = []
        self.projection.add_listener(self.changes.append)

    async def test_initial_snapshots_end_loading(self):
        self.assertTrue(self.projection.loading)
        self.projection.start()
        self.assertFalse(self.projection.loading)
        self.assertEqual(
            sorted(self.changes), ["orders", "products", "transactions", "users"]
        )

    async def test_follows_writes(self):
        self.projection.start()
        self.changes.clear()

        await self.store.create(crud.PRODUCTS, {"name": "A", "originalPrice": 10})

        self.assertEqual(self.changes, ["products"])
        self.assertEqual([p.name for p in self.projection.products], ["A"])
        self.assertEqual(self.projection.revision[crud.PRODUCTS], 2)

    async def test_orders_for_user_newest_first(self):
        self.projection.start()
        for user_id, date in (("u1", "2025-01-01"), ("u2", "2025-01-02"), ("u1", "2025-01-03")):
            await self.store.create(crud.ORDERS, {"userId": user_id, "purchaseDate": date})

        dates = [o.purchase_date for o in self.projection.orders_for("u1")]
        self.assertEqual(dates, ["2025-01-03", "2025-01-01"])

    async def test_stop_detaches(self):
        self.projection.start()
        self.projection.stop()
        self.changes.clear()

        await self.store.create(crud.USERS, {"username": "a"})

        self.assertEqual(self.changes, [])
        self.assertEqual(self.projection.users, [])


class SqliteProjectionTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = SqliteStore(os.path.join(self.temp_dir.name, "p.sqlite"))
        self.projection = Projection(self.store)

    async def asyncTearDown(self):
        self.projection.stop()
        await self.store.close()
        self.temp_dir.cleanup()

    async def test_loading_until_first_delivery(self):
        await self.store.create(crud.USERS, {"username": "a"})
        self.projection.start()
        self.assertTrue(self.projection.loading)

        await self.store.drain()

        self.assertFalse(self.projection.loading)
        self.assertEqual([u.username for u in self.projection.users], ["a"])

    async def test_lags_until_delivery(self):
        self.projection.start()
        await self.store.drain()

        await self.store.create(crud.USERS, {"username": "b"})
        self.assertEqual(self.projection.users, [])

        await self.store.drain()
        self.assertEqual([u.username for u in self.projection.users], ["b"])


if __name__ == "__main__":
    unittest.main()
