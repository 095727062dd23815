# src/db/crud.py
# typed reads/writes over a DocumentStore; business rules live in services/
from __future__ import annotations

from typing import Any, Dict, List, Optional

from db import models
from db.store import DocumentStore

USERS = "users"
PRODUCTS = "products"
ORDERS = "orders"
TRANSACTIONS = "transactions"
SESSIONS = "sessions"


# ---------------------------
# Users
# ---------------------------


async def get_user(store: DocumentStore, user_id: str) -> Optional[models.User]:
    doc = await store.get(USERS, user_id)
    return models.User.from_doc(doc) if doc else None


async def _first_user(store: DocumentStore, **filters: Any) -> Optional[models.User]:
    docs = await store.find(USERS, **filters)
    return models.User.from_doc(docs[0]) if docs else None


async def find_user_by_username(
    store: DocumentStore, username: str
) -> Optional[models.User]:
    return await _first_user(store, username=username)


async def find_user_by_email(store: DocumentStore, email: str) -> Optional[models.User]:
    return await _first_user(store, email=email)


async def find_user_by_ref_code(
    store: DocumentStore, ref_code: Optional[str]
) -> Optional[models.User]:
    """Resolve a referral code to its owner; None for empty or unknown codes."""
    if not ref_code:
        return None
    return await _first_user(store, refCode=ref_code)


async def ref_code_taken(store: DocumentStore, ref_code: str) -> bool:
    return bool(await store.find(USERS, refCode=ref_code))


async def list_users(store: DocumentStore) -> List[models.User]:
    return [models.User.from_doc(d) for d in await store.all(USERS)]


USER_UNIQUE_FIELDS = ("username", "refCode")


async def create_user(store: DocumentStore, fields: Dict[str, Any]) -> models.User:
    """
    Insert a user with zero balances unless fields say otherwise. Raises
    ConditionFailed if the username or refCode is already taken.
    """
    doc = {
        "role": "user",
        "depositWallet": 0,
        "commissionWallet": 0,
        "referredBy": None,
        **fields,
    }
    user_id = await store.create(USERS, doc, unique=USER_UNIQUE_FIELDS)
    return await get_user(store, user_id)


# ---------------------------
# Products
# ---------------------------


async def get_product(store: DocumentStore, product_id: str) -> Optional[models.Product]:
    doc = await store.get(PRODUCTS, product_id)
    return models.Product.from_doc(doc) if doc else None


async def list_products(store: DocumentStore) -> List[models.Product]:
    return [models.Product.from_doc(d) for d in await store.all(PRODUCTS)]


# ---------------------------
# Orders & transactions
# ---------------------------


async def get_order(store: DocumentStore, order_id: str) -> Optional[models.Order]:
    doc = await store.get(ORDERS, order_id)
    return models.Order.from_doc(doc) if doc else None


async def list_orders(store: DocumentStore, user_id: str) -> List[models.Order]:
    """A user's orders, newest first."""
    docs = await store.find(ORDERS, userId=user_id)
    docs.sort(key=lambda d: d.get("purchaseDate", ""), reverse=True)
    return [models.Order.from_doc(d) for d in docs]


async def list_transactions(
    store: DocumentStore, user_id: Optional[str] = None
) -> List[models.Transaction]:
    docs = (
        await store.find(TRANSACTIONS, userId=user_id)
        if user_id
        else await store.all(TRANSACTIONS)
    )
    return [models.Transaction.from_doc(d) for d in docs]


# ---------------------------
# Sessions
# ---------------------------


async def find_session(store: DocumentStore, token: str) -> Optional[models.Session]:
    docs = await store.find(SESSIONS, token=token)
    return models.Session.from_doc(docs[0]) if docs else None
