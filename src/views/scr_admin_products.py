from __future__ import annotations

from datetime import timedelta
from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label

from db import crud
from utils.pure import format_currency, parse_whole_number, utc_now
from views.base_screen import BaseScreen


class AdminProductsScreen(BaseScreen):
    """
    Admins list products, add new ones and rotate the credentials of the
    highlighted product. Rotation never touches orders already placed.
    """

    WATCHES = (crud.PRODUCTS,)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield DataTable(id="table-adm-products")
            with Horizontal(id="hort-product-form"):
                with Vertical():
                    yield Label("Name")
                    yield Input(placeholder="Netflix Premium", id="input-name")
                    yield Label("Price (₫)")
                    yield Input(
                        placeholder="300000",
                        id="input-price",
                        type="integer",
                        validators=[Number(minimum=1)],
                    )
                    yield Label("Valid for (days)")
                    yield Input(
                        "30",
                        id="input-days",
                        type="integer",
                        validators=[Number(minimum=1)],
                    )
                with Vertical():
                    yield Label("Account username")
                    yield Input(placeholder="user", id="input-acc-user")
                    yield Label("Account password")
                    yield Input(placeholder="123", id="input-acc-pwd")
                    yield Label("Cookie")
                    yield Input(placeholder="{}", id="input-acc-cookie")
            with Horizontal(id="div-button"):
                yield Button("Rotate credentials", id="btn-rotate", variant="warning")
                yield Button("Add product", id="btn-add", variant="success")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Name", "Price", "Start", "End", "Account")
        self.refresh_view()

    def refresh_view(self) -> None:
        table = self.query_one(DataTable)
        table.clear()
        for p in self.app.state.projection.products:
            table.add_row(
                p.name,
                format_currency(p.original_price),
                p.start_date[:10],
                p.end_date[:10],
                p.account.username,
                key=p.id,
            )

    def _value(self, input_id: str) -> str:
        return self.query_one(input_id, Input).value.strip()

    def _highlighted_product_id(self) -> Optional[str]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return row_key.value

    @on(Button.Pressed, "#btn-add")
    @work(exclusive=True)
    async def handle_add(self) -> None:
        name = self._value("#input-name")
        price = parse_whole_number(self._value("#input-price"))
        days = parse_whole_number(self._value("#input-days") or "30")
        if not name or not price or not days:
            self.notify("Name, price and days are required.", severity="error")
            return

        start = utc_now()
        result = await self.app.state.admin.create_product(
            self.app.state.token,
            name,
            price,
            start=start,
            end=start + timedelta(days=days),
            username=self._value("#input-acc-user") or "user",
            password=self._value("#input-acc-pwd") or "123",
            cookie=self._value("#input-acc-cookie") or "{}",
        )
        if result:
            self.notify(f"{result.message} ({result.value.name})")
            for input_id in ("#input-name", "#input-price"):
                self.query_one(input_id, Input).value = ""
        else:
            self.notify(result.message, severity="error")

    @on(Button.Pressed, "#btn-rotate")
    @work(exclusive=True)
    async def handle_rotate(self) -> None:
        product_id = self._highlighted_product_id()
        username = self._value("#input-acc-user")
        password = self._value("#input-acc-pwd")
        if not product_id or not username or not password:
            self.notify(
                "Pick a product and fill in the new account username and password.",
                severity="error",
            )
            return

        result = await self.app.state.admin.rotate_credentials(
            self.app.state.token,
            product_id,
            username,
            password,
            self._value("#input-acc-cookie") or "{}",
        )
        self.notify(result.message, severity="information" if result else "error")
