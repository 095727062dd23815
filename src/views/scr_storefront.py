from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import DataTable, Label

from db import crud
from utils.errors import InvalidProduct
from utils.pure import format_currency
from views.base_screen import BaseScreen
from views.modal_purchase import PurchaseModal


class StorefrontScreen(BaseScreen):
    """
    Product list with the live prorated price. Enter on a row opens the
    purchase dialog.
    """

    # only here to be displayed in footer
    BINDINGS = [
        Binding("enter", "noop", "Buy", show=True, key_display="⏎"),
    ]

    WATCHES = (crud.PRODUCTS,)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Label("Hot products", id="label-shop-title")
            yield DataTable(id="table-products")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Product", "Days left", "Price now", "Full price")
        self.refresh_view()

    def refresh_view(self) -> None:
        ledger = self.app.state.ledger
        table = self.query_one(DataTable)
        table.clear()
        for product in self.app.state.projection.products:
            try:
                quote = ledger.quote(product)
                days, price = str(quote.days_remaining), format_currency(quote.price)
            except InvalidProduct:
                days, price = "?", "-"
            table.add_row(
                product.name,
                days,
                price,
                format_currency(product.original_price),
                key=product.id,
            )

    @on(DataTable.RowSelected, "#table-products")
    @work(exclusive=True)
    async def handle_buy(self, event: DataTable.RowSelected) -> None:
        product_id = event.row_key.value
        if await self.app.push_screen_wait(PurchaseModal(product_id)):
            self.refresh_sidebar()
