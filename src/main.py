import argparse
import asyncio
import getpass

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from utils.config import BackendConfig
from utils.logger import get_logger
from utils.messages import (
    CollectionChangedMessage,
    ProfileChangedMessage,
    QuitRequestedMessage,
    UserLogoutMessage,
)
from utils.pure import ADMIN_ROUTE, is_admin_route
from utils.state import GlobalState
from views.scr_admin_products import AdminProductsScreen
from views.scr_admin_transactions import AdminTransactionsScreen
from views.scr_admin_users import AdminUsersScreen
from views.scr_login import LoginScreen
from views.scr_order_history import OrderHistoryScreen
from views.scr_storefront import StorefrontScreen

_logger = get_logger(__name__)


class ShopApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "shop": StorefrontScreen,
        "history": OrderHistoryScreen,
        "adm_products": AdminProductsScreen,
        "adm_users": AdminUsersScreen,
        "adm_tx": AdminTransactionsScreen,
    }

    SHOP_MODES = {"shop": "Storefront", "history": "Order History"}
    ADMIN_MODES = {
        "adm_products": "Products",
        "adm_users": "Users",
        "adm_tx": "Transactions",
    }

    CSS_PATH = "styles/shop.tcss"

    state: GlobalState

    def __init__(self, state: GlobalState):
        super().__init__()
        self.state = state

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.title = "SHOP PRO"
        self.sub_title = (
            "Admin console" if self.state.admin_route else "Storefront"
        ) + (" · offline demo" if self.state.config.offline else "")
        self.state.projection.add_listener(self._forward_collection_change)
        self.state.sessions.add_listener(lambda _user: self._forward_profile_change())
        self.state.start()
        self.main_flow()

    def _forward_collection_change(self, collection: str) -> None:
        self.screen.post_message(CollectionChangedMessage(collection))

    def _forward_profile_change(self) -> None:
        self.screen.post_message(ProfileChangedMessage())

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        await self.state.end_session()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        await self.state.close()
        self.exit()

    @work
    async def main_flow(self):
        await self.push_screen_wait(LoginScreen(require_admin=self.state.admin_route))
        mode = "adm_products" if self.state.admin_route else "shop"
        await self.switch_mode(mode)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="shop", description="Shared-account storefront and admin console."
    )
    parser.add_argument(
        "route",
        nargs="?",
        default="",
        help=f"URL-style fragment; '{ADMIN_ROUTE}' opens the admin console",
    )
    parser.add_argument(
        "--provision-admin",
        metavar="USERNAME",
        help="create an admin account (password is prompted) and exit",
    )
    return parser.parse_args(argv)


async def provision_admin(config: BackendConfig, username: str, password: str) -> bool:
    state = GlobalState.from_config(config)
    try:
        result = await state.sessions.provision_admin(username, password)
    finally:
        await state.close()
    if result:
        _logger.info(result.message)
    else:
        _logger.error(result.message)
    return result.success


def main(argv=None) -> int:
    args = parse_args(argv)
    config = BackendConfig.from_env()

    if args.provision_admin:
        password = getpass.getpass(f"Password for {args.provision_admin}: ")
        ok = asyncio.run(provision_admin(config, args.provision_admin, password))
        return 0 if ok else 1

    state = GlobalState.from_config(config, admin_route=is_admin_route(args.route))
    ShopApp(state).run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
