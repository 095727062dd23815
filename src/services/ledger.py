"""
Wallet ledger: prorated pricing, purchases, referral commissions and top-ups.

Every purchase is one WriteBatch. The buyer debit is a conditional increment
(minimum 0) evaluated by the store against the committed balance, so two
purchases racing on the same stale balance cannot both go through.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Callable, Optional

from db import crud
from db.models import Order, Product, User
from db.store import DocumentStore, WriteBatch
from utils.errors import (
    ConditionFailed,
    InsufficientFunds,
    InvalidAmount,
    InvalidProduct,
    NotFound,
    Result,
    operation,
)
from utils.logger import get_logger
from utils.pure import Quote, format_currency, isoformat, prorate_price, utc_now

_logger = get_logger(__name__)

COMMISSION_RATE = 0.30


class LedgerEngine:
    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.clock = clock

    def quote(self, product: Product, now: Optional[datetime] = None) -> Quote:
        """Price of product right now; InvalidProduct if its dates don't parse."""
        try:
            return prorate_price(
                product.original_price,
                product.start_date,
                product.end_date,
                now or self.clock(),
            )
        except (TypeError, ValueError) as exc:
            raise InvalidProduct(f"'{product.name}' has malformed validity dates.") from exc

    @operation("Purchase successful.")
    async def purchase(
        self, user: User, product: Product, now: Optional[datetime] = None
    ) -> Order:
        now = now or self.clock()
        quote = self.quote(product, now)
        price = quote.price

        # early exit on the balance we already have; the commit re-checks it
        if user.deposit_wallet < price:
            raise InsufficientFunds(
                f"Insufficient balance: {format_currency(price)} needed, "
                f"{format_currency(user.deposit_wallet)} available.",
                balance=user.deposit_wallet,
                price=price,
            )

        batch = WriteBatch()
        batch.increment(crud.USERS, user.id, "depositWallet", -price, minimum=0)

        order_doc = {
            "userId": user.id,
            "productId": product.id,
            "productName": product.name,
            "price": price,
            "days": quote.days_remaining,
            "purchaseDate": isoformat(now),
            "accountData": product.account.to_doc(),
        }
        order_id = batch.create(crud.ORDERS, order_doc)
        batch.create(
            crud.TRANSACTIONS,
            {
                "userId": user.id,
                "type": "purchase",
                "amount": price,
                "status": "completed",
                "orderId": order_id,
            },
        )

        referrer = await crud.find_user_by_ref_code(self.store, user.referred_by)
        commission = price * COMMISSION_RATE
        if referrer and referrer.id != user.id:
            batch.increment(crud.USERS, referrer.id, "commissionWallet", commission)
            batch.create(
                crud.TRANSACTIONS,
                {
                    "userId": referrer.id,
                    "type": "commission",
                    "amount": commission,
                    "status": "completed",
                    "sourceUserId": user.id,
                    "orderId": order_id,
                },
            )
        elif user.referred_by:
            _logger.debug(f"Referral code {user.referred_by} not found, no commission")

        try:
            await self.store.commit(batch)
        except ConditionFailed as exc:
            _logger.warning(
                f"Purchase of '{product.name}' by '{user.username}' rejected at commit: {exc}"
            )
            committed = await crud.get_user(self.store, user.id)
            balance = committed.deposit_wallet if committed else 0
            raise InsufficientFunds(
                f"Insufficient balance: {format_currency(price)} needed, "
                f"{format_currency(balance)} available.",
                balance=balance,
                price=price,
            ) from exc

        _logger.info(
            f"'{user.username}' bought '{product.name}' for {format_currency(price)} "
            f"({quote.days_remaining}/{quote.total_days} days)"
        )
        if referrer and referrer.id != user.id:
            _logger.info(
                f"Commission {format_currency(commission)} credited to '{referrer.username}'"
            )
        return Order.from_doc({"id": order_id, **order_doc})

    @operation("Purchase successful.")
    async def purchase_by_id(self, user_id: str, product_id: str) -> Result[Order]:
        """Purchase using the stored user and product rather than caller copies."""
        user = await crud.get_user(self.store, user_id)
        product = await crud.get_product(self.store, product_id)
        if user is None or product is None:
            raise NotFound("User or product no longer exists.")
        return await self.purchase(user, product)

    @operation("Deposit credited.")
    async def credit_deposit(
        self, user_id: str, amount: float, note: Optional[str] = None
    ) -> User:
        """Manual top-up of a deposit wallet, recorded as a deposit transaction."""
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidAmount("Deposit amount must be a positive number.")
        batch = WriteBatch()
        batch.increment(crud.USERS, user_id, "depositWallet", amount)
        batch.create(
            crud.TRANSACTIONS,
            {
                "userId": user_id,
                "type": "deposit",
                "amount": amount,
                "status": "completed",
                "note": note,
            },
        )
        await self.store.commit(batch)
        user = await crud.get_user(self.store, user_id)
        _logger.info(f"Credited {format_currency(amount)} to '{user.username}'")
        return user
