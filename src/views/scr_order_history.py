from typing import Dict

from textual import on
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import DataTable, MarkdownViewer

from db import crud
from db.models import Order
from utils.pure import format_currency, generate_markdown_table
from views.base_screen import BaseScreen


class OrderHistoryScreen(BaseScreen):
    """
    Customers browse their past orders, newest first. The detail pane shows
    the credentials captured when the order was placed.
    """

    WATCHES = (crud.ORDERS,)

    def __init__(self) -> None:
        super().__init__()
        self._orders: Dict[str, Order] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Product", "Purchased", "Days", "Price", "Login")
        self.refresh_view()

    def refresh_view(self) -> None:
        user = self.app.state.user
        orders = self.app.state.projection.orders_for(user.id) if user else []
        self._orders = {o.id: o for o in orders}

        table = self.query_one(DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o.product_name,
                o.purchase_date[:19].replace("T", " "),
                o.days,
                format_currency(o.price),
                f"{o.account_data.username} | ***",
                key=o.id,
            )
        self._render_detail(orders[0] if orders else None)

    @on(DataTable.RowHighlighted, "#table-orders")
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        self._render_detail(self._orders.get(event.row_key.value))

    def _render_detail(self, order: Order | None) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if not order:
            viewer.document.update("### Select an order to view its details.")
            return

        header = (
            f"### {order.product_name}\n"
            f"Purchased: {order.purchase_date}  \n"
            f"Paid: {format_currency(order.price)} for {order.days} day(s)\n\n"
        )
        account = order.account_data
        rows = [
            ["Username", f"`{account.username}`"],
            ["Password", f"`{account.password}`"],
            ["Cookie", f"`{account.cookie}`"],
        ]
        md = generate_markdown_table(["Field", "Value"], rows, ["l", "l"])
        viewer.document.update(header + md)
