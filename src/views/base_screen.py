from typing import Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.messages import (
    CollectionChangedMessage,
    ProfileChangedMessage,
    UserLogoutMessage,
)
from utils.pure import format_currency, generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("Account", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        self.init_mode = self.app.current_mode
        self.update_info()

        modes = self.app.ADMIN_MODES if self.app.state.admin_route else self.app.SHOP_MODES
        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [ListItem(Label(v), id="list-menu-item-" + k) for k, v in modes.items()]
        )
        self.highlight_item(self.init_mode)

    def update_info(self) -> None:
        user = self.app.state.user
        if not user:
            return
        table_rows = [
            ["User", user.username],
            ["Role", "Admin" if user.is_admin else "Customer"],
        ]
        if not user.is_admin:
            table_rows += [
                ["Deposit", format_currency(user.deposit_wallet)],
                ["Commission", format_currency(user.commission_wallet)],
                ["Ref code", user.ref_code],
            ]
        md_table_str = generate_markdown_table(None, table_rows, ["l", "l"])
        self.query_one(Markdown).update(md_table_str)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-logout")
    @work
    async def handle_logout(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to log out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = mode_str in item.id


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.

    Subclasses render from the app's projection in refresh_view, which runs on
    resume and whenever one of the WATCHES collections gets a new snapshot.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    WATCHES: Tuple[str, ...] = ()

    def __init__(self, show_sidebar: bool = True):
        super().__init__()
        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    def on_screen_resume(self) -> None:
        if self.is_mounted:
            self.refresh_sidebar()
            self.refresh_view()

    def refresh_view(self) -> None:
        """Re-render screen content from the projection."""

    def refresh_sidebar(self) -> None:
        if self._show_sidebar and self.is_mounted:
            self.query_one(Sidebar).update_info()

    @on(CollectionChangedMessage)
    def handle_collection_changed(self, message: CollectionChangedMessage) -> None:
        if message.collection in self.WATCHES and self.is_mounted:
            self.refresh_view()

    @on(ProfileChangedMessage)
    def handle_profile_changed(self) -> None:
        self.refresh_sidebar()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
