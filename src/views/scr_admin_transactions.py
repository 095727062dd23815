from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import DataTable, Markdown

from db import crud
from utils.pure import format_currency
from views.base_screen import BaseScreen


class AdminTransactionsScreen(BaseScreen):
    """Append-only audit trail: purchases, commissions and deposits, newest first."""

    WATCHES = (crud.TRANSACTIONS, crud.USERS)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Markdown("", id="md-tx-summary")
            yield DataTable(id="table-adm-tx")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Date", "User", "Type", "Amount", "Status")
        self.refresh_view()

    def refresh_view(self) -> None:
        projection = self.app.state.projection
        names = {u.id: u.username for u in projection.users}
        txs = sorted(
            projection.transactions, key=lambda t: t.created_at or "", reverse=True
        )

        totals = {"purchase": 0.0, "commission": 0.0, "deposit": 0.0}
        table = self.query_one(DataTable)
        table.clear()
        for t in txs:
            totals[t.type] = totals.get(t.type, 0.0) + t.amount
            table.add_row(
                (t.created_at or "")[:19].replace("T", " "),
                names.get(t.user_id, t.user_id),
                t.type,
                format_currency(t.amount),
                t.status,
                key=t.id,
            )

        self.query_one(Markdown).update(
            f"**Sales:** {format_currency(totals['purchase'])} · "
            f"**Commissions:** {format_currency(totals['commission'])} · "
            f"**Deposits:** {format_currency(totals['deposit'])}"
        )
