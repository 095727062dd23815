from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from db import crud
from db.models import Product, User
from services.ledger import LedgerEngine
from services.session import SessionManager
from utils.errors import InvalidAmount, InvalidProduct, NotFound, Result, operation
from utils.logger import get_logger
from utils.pure import isoformat, parse_timestamp, utc_now

_logger = get_logger(__name__)

DEFAULT_VALIDITY_DAYS = 30


class AdminService:
    """Admin console operations. Every call re-authorizes the session token."""

    def __init__(self, sessions: SessionManager, ledger: LedgerEngine) -> None:
        self.sessions = sessions
        self.ledger = ledger
        self.store = sessions.store

    @operation("Product created.")
    async def create_product(
        self,
        token: Optional[str],
        name: str,
        original_price: float,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        username: str = "user",
        password: str = "123",
        cookie: str = "{}",
    ) -> Product:
        admin = await self.sessions.authorize(token, require_admin=True)
        if not name:
            raise InvalidProduct("Product name is required.")
        if (
            original_price is None
            or not math.isfinite(original_price)
            or original_price <= 0
        ):
            raise InvalidAmount("Price must be a positive number.")

        try:
            start = parse_timestamp(start) if start else utc_now()
            end = (
                parse_timestamp(end)
                if end
                else start + timedelta(days=DEFAULT_VALIDITY_DAYS)
            )
        except ValueError as exc:
            raise InvalidProduct(f"Bad validity dates: {exc}") from exc
        product_id = await self.store.create(
            crud.PRODUCTS,
            {
                "name": name,
                "type": "Service",
                "originalPrice": original_price,
                "startDate": isoformat(start),
                "endDate": isoformat(end),
                "username": username,
                "password": password,
                "cookie": cookie,
            },
        )
        _logger.info(f"'{admin.username}' created product '{name}'")
        return await crud.get_product(self.store, product_id)

    @operation("Credentials updated.")
    async def rotate_credentials(
        self,
        token: Optional[str],
        product_id: str,
        username: str,
        password: str,
        cookie: str = "{}",
    ) -> Product:
        """New credentials apply to future orders only."""
        admin = await self.sessions.authorize(token, require_admin=True)
        if await crud.get_product(self.store, product_id) is None:
            raise NotFound("Product not found.")
        await self.store.update(
            crud.PRODUCTS,
            product_id,
            {"username": username, "password": password, "cookie": cookie},
        )
        _logger.info(f"'{admin.username}' rotated credentials of {product_id}")
        return await crud.get_product(self.store, product_id)

    async def top_up(
        self, token: Optional[str], user_id: str, amount: float
    ) -> Result[User]:
        auth = await self._authorize(token)
        if not auth:
            return auth
        return await self.ledger.credit_deposit(
            user_id, amount, note=f"manual top-up by {auth.value.username}"
        )

    @operation()
    async def _authorize(self, token: Optional[str]) -> User:
        return await self.sessions.authorize(token, require_admin=True)
