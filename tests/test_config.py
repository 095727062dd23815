import os
import sys
import tempfile
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db.local_store import LocalStore  # noqa: E402
from db.sqlite_store import SqliteStore  # noqa: E402
from main import parse_args, provision_admin  # noqa: E402
from utils.config import DEFAULT_DATABASE_PATH, BackendConfig, build_store  # noqa: E402
from utils.state import GlobalState  # noqa: E402


class FakeProvider:
    async def sign_in(self):
        raise AssertionError("should not be called")


class BackendConfigTestCase(unittest.TestCase):
    def test_empty_environment_is_offline(self):
        config = BackendConfig.from_env({})
        self.assertTrue(config.offline)
        self.assertEqual(config.mode, "offline (demo)")
        self.assertEqual(config.database_path, DEFAULT_DATABASE_PATH)

    def test_shop_prefix_wins_over_firebase(self):
        config = BackendConfig.from_env(
            {
                "FIREBASE_API_KEY": "fb-key",
                "FIREBASE_PROJECT_ID": "fb-project",
                "SHOP_PROJECT_ID": "shop-project",
                "SHOP_DATABASE_PATH": "/tmp/x.sqlite",
            }
        )
        self.assertFalse(config.offline)
        self.assertEqual(config.api_key, "fb-key")
        self.assertEqual(config.project_id, "shop-project")
        self.assertEqual(config.database_path, "/tmp/x.sqlite")

    def test_build_store_picks_backend(self):
        self.assertIsInstance(build_store(BackendConfig(local_path=None)), LocalStore)
        online = build_store(BackendConfig(api_key="k", database_path="x.sqlite"))
        self.assertIsInstance(online, SqliteStore)

    def test_parse_args(self):
        args = parse_args(["#/admin"])
        self.assertEqual(args.route, "#/admin")
        self.assertIsNone(args.provision_admin)
        self.assertEqual(parse_args(["--provision-admin", "root"]).provision_admin, "root")


class GlobalStateTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_offline_state_disables_federated_sign_in(self):
        state = GlobalState.from_config(
            BackendConfig(local_path=None), identity_provider=FakeProvider()
        )
        self.assertIsNone(state.sessions.identity_provider)
        self.assertFalse(state.admin_route)

        result = await state.sessions.login_with_google()
        self.assertFalse(result)
        await state.close()

    async def test_online_state_keeps_provider(self):
        with tempfile.TemporaryDirectory() as folder:
            config = BackendConfig(
                api_key="k", database_path=os.path.join(folder, "s.sqlite")
            )
            provider = FakeProvider()
            state = GlobalState.from_config(config, provider, admin_route=True)
            self.assertIs(state.sessions.identity_provider, provider)
            self.assertTrue(state.admin_route)
            await state.close()

    async def test_provision_admin_command(self):
        with tempfile.TemporaryDirectory() as folder:
            config = BackendConfig(local_path=folder)

            self.assertTrue(await provision_admin(config, "root", "pw"))
            self.assertFalse(await provision_admin(config, "root", "pw"))

            state = GlobalState.from_config(config)
            result = await state.sessions.login("root", "pw", require_admin=True)
            self.assertTrue(result)
            await state.close()


if __name__ == "__main__":
    unittest.main()
