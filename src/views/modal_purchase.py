from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, MarkdownViewer

from db.crud import get_product
from db.models import Product
from utils.errors import InvalidProduct
from utils.pure import format_currency, generate_markdown_table


class PurchaseModal(ModalScreen[bool]):
    """
    Shows the prorated quote for one product and buys it on confirm.
    Returns True if the purchase went through.
    """

    def __init__(self, product_id: str) -> None:
        super().__init__()
        self._product_id = product_id
        self._product: Product | None = None

    def compose(self) -> ComposeResult:
        with Vertical(id="div-purchase"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Buy Now", id="btn-buy", variant="primary")

    async def on_mount(self):
        state = self.app.state
        self._product = await get_product(state.store, self._product_id)
        if self._product is None:
            self.notify("This product is no longer available.", severity="error")
            self.dismiss(False)
            return

        try:
            quote = state.ledger.quote(self._product)
        except InvalidProduct as exc:
            self.notify(exc.message, severity="error")
            self.dismiss(False)
            return

        balance = state.user.deposit_wallet if state.user else 0
        rows = [
            ["Product", self._product.name],
            ["Full price", format_currency(self._product.original_price)],
            ["Days left", f"{quote.days_remaining} / {quote.total_days}"],
            ["You pay", format_currency(quote.price)],
            ["Your balance", format_currency(balance)],
        ]
        md = generate_markdown_table(["", ""], rows, ["l", "r"])
        await self.query_one(MarkdownViewer).document.update(
            f"### Buy {self._product.name}\n\n" + md
        )
        if balance < quote.price:
            buy_btn = self.query_one("#btn-buy", Button)
            buy_btn.label = "Insufficient balance"
            buy_btn.variant = "warning"
        self.query_one("#btn-buy").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-buy")
    @work(exclusive=True)
    async def handle_buy(self) -> None:
        state = self.app.state
        result = await state.ledger.purchase_by_id(state.user.id, self._product_id)
        if not result:
            self.notify(result.message, severity="error")
            self.dismiss(False)
            return
        order = result.value
        self.notify(
            f"{result.message} Login: {order.account_data.username}. "
            "See Order History for the full credentials."
        )
        self.dismiss(True)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)
