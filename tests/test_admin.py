import os
import sys
import unittest
from datetime import datetime, timedelta, timezone

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import crud  # noqa: E402
from db.local_store import LocalStore  # noqa: E402
from services.admin import AdminService  # noqa: E402
from services.ledger import LedgerEngine  # noqa: E402
from services.session import SessionManager  # noqa: E402
from utils.errors import AuthFailure, InvalidAmount, InvalidProduct, NotFound  # noqa: E402
from utils.pure import parse_timestamp  # noqa: E402


class AdminServiceTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = LocalStore(None)
        self.sessions = SessionManager(self.store)
        self.ledger = LedgerEngine(self.store)
        self.admin = AdminService(self.sessions, self.ledger)

        await self.sessions.provision_admin("root", "pw")
        self.customer = (await self.sessions.register("alice", "pw")).value
        await self.sessions.login("root", "pw", require_admin=True)
        self.token = self.sessions.token

    async def customer_token(self):
        other = SessionManager(self.store)
        await other.login("alice", "pw")
        return other.token

    # ---------- products ----------

    async def test_create_product_defaults(self):
        result = await self.admin.create_product(self.token, "Netflix", 300000)

        self.assertTrue(result, result.message)
        product = result.value
        self.assertEqual(product.original_price, 300000)
        self.assertEqual(
            product.account.to_doc(),
            {"username": "user", "password": "123", "cookie": "{}"},
        )
        start = parse_timestamp(product.start_date)
        end = parse_timestamp(product.end_date)
        self.assertEqual(end - start, timedelta(days=30))
        self.assertEqual(len(await crud.list_products(self.store)), 1)

    async def test_create_product_with_window(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        result = await self.admin.create_product(
            self.token,
            "Spotify",
            90000,
            start=start,
            end=start + timedelta(days=90),
            username="acc",
            password="secret",
        )
        self.assertEqual(result.value.start_date, "2025-01-01T00:00:00Z")
        self.assertEqual(result.value.end_date, "2025-04-01T00:00:00Z")
        self.assertEqual(result.value.account.password, "secret")

    async def test_create_product_validation(self):
        no_name = await self.admin.create_product(self.token, "", 1000)
        self.assertIsInstance(no_name.error, InvalidProduct)
        free = await self.admin.create_product(self.token, "X", 0)
        self.assertIsInstance(free.error, InvalidAmount)
        for price in (float("nan"), float("inf")):
            not_a_price = await self.admin.create_product(self.token, "X", price)
            self.assertIsInstance(not_a_price.error, InvalidAmount)
        bad_dates = await self.admin.create_product(self.token, "X", 10, start="someday")
        self.assertIsInstance(bad_dates.error, InvalidProduct)
        self.assertEqual(await crud.list_products(self.store), [])

    async def test_customers_cannot_use_admin_operations(self):
        token = await self.customer_token()

        created = await self.admin.create_product(token, "Netflix", 1000)
        topped = await self.admin.top_up(token, self.customer.id, 1000)

        for result in (created, topped):
            self.assertIsInstance(result.error, AuthFailure)
            self.assertEqual(result.error.reason, "role")
        self.assertEqual(await crud.list_products(self.store), [])
        self.assertEqual(await crud.list_transactions(self.store), [])

    async def test_revoked_token_is_refused(self):
        await self.sessions.logout()

        result = await self.admin.create_product(self.token, "Netflix", 1000)

        self.assertEqual(result.error.reason, "session")

    async def test_rotate_credentials(self):
        product = (await self.admin.create_product(self.token, "Netflix", 1000)).value

        result = await self.admin.rotate_credentials(
            self.token, product.id, "acc2", "pw2", '{"sid": "1"}'
        )

        self.assertTrue(result)
        self.assertEqual(result.value.account.username, "acc2")
        self.assertEqual(result.value.account.cookie, '{"sid": "1"}')
        self.assertEqual(result.value.name, "Netflix")

        missing = await self.admin.rotate_credentials(self.token, "gone", "a", "b")
        self.assertIsInstance(missing.error, NotFound)

    # ---------- wallets ----------

    async def test_top_up_records_deposit(self):
        result = await self.admin.top_up(self.token, self.customer.id, 250000)

        self.assertTrue(result, result.message)
        self.assertEqual(result.value.deposit_wallet, 250000)
        tx = (await crud.list_transactions(self.store, self.customer.id))[0]
        self.assertEqual(tx.type, "deposit")
        self.assertEqual(tx.note, "manual top-up by root")

        negative = await self.admin.top_up(self.token, self.customer.id, -5)
        self.assertIsInstance(negative.error, InvalidAmount)
        not_a_number = await self.admin.top_up(self.token, self.customer.id, float("nan"))
        self.assertIsInstance(not_a_number.error, InvalidAmount)
        self.assertEqual(len(await crud.list_transactions(self.store)), 1)


if __name__ == "__main__":
    unittest.main()
