from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label

from db import crud
from utils.pure import format_currency, parse_whole_number
from views.base_screen import BaseScreen


class AdminUsersScreen(BaseScreen):
    """
    Every account with both wallets. The highlighted user can be topped up.
    """

    WATCHES = (crud.USERS,)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield DataTable(id="table-adm-users")
            with Horizontal(id="hort-topup"):
                yield Label("Top up (₫):")
                yield Input(
                    placeholder="100000",
                    id="input-topup",
                    type="integer",
                    validators=[Number(minimum=1)],
                )
                yield Button("Top up", id="btn-topup", variant="success")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns(
            "User", "Email", "Role", "Deposit", "Commission", "Ref code", "Referred by"
        )
        self.refresh_view()

    def refresh_view(self) -> None:
        table = self.query_one(DataTable)
        cursor_row = table.cursor_row
        table.clear()
        for u in self.app.state.projection.users:
            table.add_row(
                u.username,
                u.email or "-",
                u.role,
                format_currency(u.deposit_wallet),
                format_currency(u.commission_wallet),
                u.ref_code,
                u.referred_by or "-",
                key=u.id,
            )
        if table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))

    @on(Button.Pressed, "#btn-topup")
    @work(exclusive=True)
    async def handle_topup(self) -> None:
        table = self.query_one(DataTable)
        amount = parse_whole_number(self.query_one("#input-topup", Input).value)
        if table.row_count == 0 or not amount:
            self.notify("Pick a user and enter a whole amount.", severity="error")
            return

        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        result = await self.app.state.admin.top_up(
            self.app.state.token, row_key.value, amount
        )
        if result:
            self.notify(
                f"{result.message} {result.value.username} now has "
                f"{format_currency(result.value.deposit_wallet)}."
            )
            self.query_one("#input-topup", Input).value = ""
        else:
            self.notify(result.message, severity="error")
