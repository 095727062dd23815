import asyncio
import json
import os
import sys
import tempfile
import unittest
from unittest import mock

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db.local_store import LocalStore  # noqa: E402
from db.sqlite_store import SqliteStore  # noqa: E402
from db.store import WriteBatch  # noqa: E402
from utils.errors import ConditionFailed, NotFound  # noqa: E402


class StoreContract:
    """Behaviour both backends must share. Mixed into one TestCase per backend."""

    def make_store(self):
        raise NotImplementedError

    async def asyncSetUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = self.make_store()

    async def asyncTearDown(self):
        await self.store.close()
        self.temp_dir.cleanup()

    # ---------- create / get / update ----------

    async def test_create_assigns_id_and_timestamp(self):
        doc_id = await self.store.create("users", {"id": "ignored", "username": "a"})
        self.assertNotEqual(doc_id, "ignored")

        doc = await self.store.get("users", doc_id)
        self.assertEqual(doc["id"], doc_id)
        self.assertEqual(doc["username"], "a")
        self.assertTrue(doc["createdAt"].endswith("Z"))
        self.assertIsNone(await self.store.get("users", "missing"))

    async def test_update_merges_and_keeps_id(self):
        doc_id = await self.store.create("products", {"name": "A", "password": "1"})
        await self.store.update("products", doc_id, {"password": "2", "id": "other"})

        doc = await self.store.get("products", doc_id)
        self.assertEqual(doc["id"], doc_id)
        self.assertEqual(doc["name"], "A")
        self.assertEqual(doc["password"], "2")

        with self.assertRaises(NotFound):
            await self.store.update("products", "missing", {"name": "B"})

    async def test_find_by_fields(self):
        await self.store.create("users", {"username": "a", "referredBy": None})
        await self.store.create("users", {"username": "b", "referredBy": "A1"})
        await self.store.create("sessions", {"token": "t", "revoked": False})

        found = await self.store.find("users", referredBy="A1")
        self.assertEqual([d["username"] for d in found], ["b"])
        found = await self.store.find("users", referredBy=None)
        self.assertEqual([d["username"] for d in found], ["a"])
        self.assertEqual(len(await self.store.find("sessions", revoked=False)), 1)
        self.assertEqual(len(await self.store.all("users")), 2)
        self.assertEqual(await self.store.all("orders"), [])

    async def test_returned_documents_are_copies(self):
        doc_id = await self.store.create("products", {"name": "A"})
        doc = await self.store.get("products", doc_id)
        doc["name"] = "changed"
        self.assertEqual((await self.store.get("products", doc_id))["name"], "A")

    # ---------- batches ----------

    async def test_batch_commits_every_op(self):
        user_id = await self.store.create("users", {"depositWallet": 100})
        batch = WriteBatch()
        batch.increment("users", user_id, "depositWallet", -40, minimum=0)
        batch.increment("users", user_id, "commissionWallet", 12)
        order_id = batch.create("orders", {"userId": user_id})
        batch.create("transactions", {"orderId": order_id})

        created = await self.store.commit(batch)

        self.assertEqual(created[0], order_id)
        self.assertEqual(len(created), 2)
        user = await self.store.get("users", user_id)
        self.assertEqual(user["depositWallet"], 60)
        self.assertEqual(user["commissionWallet"], 12)
        tx = (await self.store.all("transactions"))[0]
        self.assertEqual(tx["orderId"], order_id)

    async def test_failed_condition_discards_whole_batch(self):
        buyer = await self.store.create("users", {"depositWallet": 50})
        referrer = await self.store.create("users", {"commissionWallet": 0})

        batch = WriteBatch()
        batch.create("orders", {"userId": buyer})
        batch.increment("users", referrer, "commissionWallet", 30)
        batch.increment("users", buyer, "depositWallet", -100, minimum=0)

        with self.assertRaises(ConditionFailed) as ctx:
            await self.store.commit(batch)

        self.assertEqual(ctx.exception.doc_id, buyer)
        self.assertEqual(ctx.exception.field, "depositWallet")
        self.assertEqual(await self.store.all("orders"), [])
        self.assertEqual((await self.store.get("users", referrer))["commissionWallet"], 0)
        self.assertEqual((await self.store.get("users", buyer))["depositWallet"], 50)

    async def test_increment_on_missing_document_fails_batch(self):
        batch = WriteBatch()
        batch.create("orders", {"userId": "x"})
        batch.increment("users", "missing", "depositWallet", 10)
        with self.assertRaises(NotFound):
            await self.store.commit(batch)
        self.assertEqual(await self.store.all("orders"), [])

    async def test_concurrent_debits_cannot_overdraw(self):
        user_id = await self.store.create("users", {"depositWallet": 150})

        def debit():
            return self.store.commit(
                WriteBatch().increment("users", user_id, "depositWallet", -100, minimum=0)
            )

        results = await asyncio.gather(debit(), debit(), return_exceptions=True)

        failures = [r for r in results if isinstance(r, ConditionFailed)]
        self.assertEqual(len(failures), 1)
        self.assertEqual((await self.store.get("users", user_id))["depositWallet"], 50)

    # ---------- unique fields ----------

    async def test_unique_create_rejects_taken_value(self):
        await self.store.create("users", {"username": "bob", "refCode": "BOB1"})

        with self.assertRaises(ConditionFailed) as ctx:
            await self.store.create(
                "users", {"username": "bob", "refCode": "BOB2"}, unique=("username", "refCode")
            )
        self.assertEqual(ctx.exception.field, "username")

        with self.assertRaises(ConditionFailed) as ctx:
            await self.store.create(
                "users", {"username": "ann", "refCode": "BOB1"}, unique=("username", "refCode")
            )
        self.assertEqual(ctx.exception.field, "refCode")

        await self.store.create(
            "users", {"username": "ann", "refCode": "ANN1"}, unique=("username", "refCode")
        )
        await self.store.create("users", {"username": "cy", "email": None}, unique=("email",))
        await self.store.create("users", {"username": "di", "email": None}, unique=("email",))
        self.assertEqual(len(await self.store.all("users")), 4)

    async def test_unique_clash_discards_whole_batch(self):
        await self.store.create("users", {"username": "bob"})
        batch = WriteBatch()
        batch.create("orders", {"userId": "x"})
        batch.create("users", {"username": "bob"}, unique=("username",))

        with self.assertRaises(ConditionFailed):
            await self.store.commit(batch)

        self.assertEqual(await self.store.all("orders"), [])
        self.assertEqual(len(await self.store.all("users")), 1)

    async def test_unique_clash_within_one_batch(self):
        batch = WriteBatch()
        batch.create("users", {"username": "bob"}, unique=("username",))
        batch.create("users", {"username": "bob"}, unique=("username",))

        with self.assertRaises(ConditionFailed):
            await self.store.commit(batch)
        self.assertEqual(await self.store.all("users"), [])

    async def test_concurrent_unique_creates_keep_one(self):
        def create():
            return self.store.create("users", {"username": "bob"}, unique=("username",))

        results = await asyncio.gather(create(), create(), return_exceptions=True)

        self.assertEqual(sum(isinstance(r, ConditionFailed) for r in results), 1)
        self.assertEqual(len(await self.store.find("users", username="bob")), 1)

    # ---------- subscriptions ----------

    async def test_subscribers_see_initial_and_later_snapshots(self):
        await self.store.create("products", {"name": "A"})
        seen = []
        unsubscribe = self.store.subscribe("products", seen.append)
        await self.store.drain()
        self.assertEqual([[d["name"] for d in s] for s in seen], [["A"]])

        await self.store.create("products", {"name": "B"})
        await self.store.drain()
        self.assertEqual([d["name"] for d in seen[-1]], ["A", "B"])

        unsubscribe()
        await self.store.create("products", {"name": "C"})
        await self.store.drain()
        self.assertEqual(len(seen), 2)

    async def test_failed_batch_does_not_notify(self):
        user_id = await self.store.create("users", {"depositWallet": 0})
        seen = []
        self.store.subscribe("users", seen.append)
        await self.store.drain()

        with self.assertRaises(ConditionFailed):
            await self.store.commit(
                WriteBatch().increment("users", user_id, "depositWallet", -1, minimum=0)
            )
        await self.store.drain()
        self.assertEqual(len(seen), 1)

    async def test_failing_subscriber_does_not_break_others(self):
        seen = []

        def broken(snapshot):
            if snapshot:
                raise RuntimeError("boom")

        self.store.subscribe("orders", broken)
        self.store.subscribe("orders", seen.append)
        with self.assertLogs(self.LOGGER, level="ERROR"):
            await self.store.create("orders", {"userId": "x"})
            await self.store.drain()
        self.assertEqual(len(seen[-1]), 1)


class LocalStoreTestCase(StoreContract, unittest.IsolatedAsyncioTestCase):
    LOGGER = "db.local_store"

    def make_store(self):
        return LocalStore(self.temp_dir.name)

    async def test_offline_flag(self):
        self.assertTrue(self.store.offline)

    async def test_notifies_synchronously(self):
        seen = []
        self.store.subscribe("products", seen.append)
        self.assertEqual(seen, [[]])

        await self.store.create("products", {"name": "A"})
        self.assertEqual(len(seen), 2)

    async def test_persists_json_per_collection(self):
        doc_id = await self.store.create("users", {"username": "a"})

        path = os.path.join(self.temp_dir.name, "shop_users.json")
        with open(path, "r", encoding="utf-8") as f:
            self.assertEqual(json.load(f)[0]["id"], doc_id)

        reopened = LocalStore(self.temp_dir.name)
        self.assertEqual((await reopened.get("users", doc_id))["username"], "a")

    async def test_failed_write_to_disk_keeps_previous_state(self):
        user_id = await self.store.create("users", {"depositWallet": 100})
        seen = []
        self.store.subscribe("users", seen.append)
        real_replace = os.replace

        def replace(src, dst):
            if dst.endswith("shop_orders.json"):
                raise OSError("disk full")
            return real_replace(src, dst)

        batch = WriteBatch()
        batch.increment("users", user_id, "depositWallet", -40, minimum=0)
        batch.create("orders", {"userId": user_id})
        with mock.patch("db.local_store.os.replace", side_effect=replace):
            with self.assertRaises(OSError):
                await self.store.commit(batch)

        self.assertEqual((await self.store.get("users", user_id))["depositWallet"], 100)
        self.assertEqual(await self.store.all("orders"), [])
        self.assertEqual(len(seen), 1)
        self.assertEqual(
            [f for f in os.listdir(self.temp_dir.name) if f.endswith(".tmp")], []
        )

        reopened = LocalStore(self.temp_dir.name)
        self.assertEqual((await reopened.get("users", user_id))["depositWallet"], 100)
        self.assertEqual(await reopened.all("orders"), [])

    async def test_memory_only_without_folder(self):
        store = LocalStore(None)
        await store.create("users", {"username": "a"})
        self.assertEqual(len(await store.all("users")), 1)
        self.assertEqual(os.listdir(self.temp_dir.name), [])


class SqliteStoreTestCase(StoreContract, unittest.IsolatedAsyncioTestCase):
    LOGGER = "db.sqlite_store"

    def make_store(self):
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        return SqliteStore(self.db_path)

    async def test_online_flag(self):
        self.assertFalse(self.store.offline)

    async def test_notifies_on_a_later_loop_turn(self):
        seen = []
        self.store.subscribe("products", seen.append)
        self.assertEqual(seen, [])
        await self.store.drain()
        self.assertEqual(seen, [[]])

        await self.store.create("products", {"name": "A"})
        self.assertEqual(len(seen), 1)
        await self.store.drain()
        self.assertEqual(len(seen), 2)

    async def test_data_survives_reopen(self):
        doc_id = await self.store.create("users", {"username": "a"})

        reopened = SqliteStore(self.db_path)
        self.assertEqual((await reopened.get("users", doc_id))["username"], "a")
        await reopened.close()

    async def test_two_stores_on_one_file_share_the_condition(self):
        user_id = await self.store.create("users", {"depositWallet": 150})
        other = SqliteStore(self.db_path)

        results = await asyncio.gather(
            self.store.commit(
                WriteBatch().increment("users", user_id, "depositWallet", -100, minimum=0)
            ),
            other.commit(
                WriteBatch().increment("users", user_id, "depositWallet", -100, minimum=0)
            ),
            return_exceptions=True,
        )
        await other.close()

        self.assertEqual(sum(isinstance(r, ConditionFailed) for r in results), 1)
        self.assertEqual((await self.store.get("users", user_id))["depositWallet"], 50)


if __name__ == "__main__":
    unittest.main()
