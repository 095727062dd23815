# provide dataclass models over the stored documents

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

Role = Literal["user", "admin"]


@dataclass(frozen=True)
class AccountData:
    username: str
    password: str
    cookie: str

    @classmethod
    def from_doc(cls, doc: Optional[Dict[str, Any]]) -> "AccountData":
        doc = doc or {}
        return cls(
            username=doc.get("username") or "",
            password=doc.get("password") or "",
            cookie=doc.get("cookie") or "",
        )

    def to_doc(self) -> Dict[str, Any]:
        return {"username": self.username, "password": self.password, "cookie": self.cookie}


@dataclass(frozen=True)
class User:
    id: str
    username: str
    role: Role
    deposit_wallet: float
    commission_wallet: float
    ref_code: str
    referred_by: Optional[str] = None
    email: Optional[str] = None
    password_hash: Optional[str] = None
    uid: Optional[str] = None  # federated subject id
    created_at: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "User":
        return cls(
            id=doc["id"],
            username=doc.get("username", ""),
            role=doc.get("role", "user"),
            deposit_wallet=doc.get("depositWallet") or 0,
            commission_wallet=doc.get("commissionWallet") or 0,
            ref_code=doc.get("refCode", ""),
            referred_by=doc.get("referredBy"),
            email=doc.get("email"),
            password_hash=doc.get("passwordHash"),
            uid=doc.get("uid"),
            created_at=doc.get("createdAt"),
        )


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    original_price: float
    start_date: str
    end_date: str
    account: AccountData
    type: str = "Service"
    created_at: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Product":
        return cls(
            id=doc["id"],
            name=doc.get("name", ""),
            original_price=doc.get("originalPrice") or 0,
            start_date=doc.get("startDate", ""),
            end_date=doc.get("endDate", ""),
            account=AccountData.from_doc(doc),
            type=doc.get("type", "Service"),
            created_at=doc.get("createdAt"),
        )


@dataclass(frozen=True)
class Order:
    id: str
    user_id: str
    product_id: str
    product_name: str
    price: int
    days: int
    purchase_date: str
    account_data: AccountData  # snapshot taken at purchase time

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Order":
        return cls(
            id=doc["id"],
            user_id=doc.get("userId", ""),
            product_id=doc.get("productId", ""),
            product_name=doc.get("productName", ""),
            price=doc.get("price") or 0,
            days=doc.get("days") or 0,
            purchase_date=doc.get("purchaseDate", ""),
            account_data=AccountData.from_doc(doc.get("accountData")),
        )


@dataclass(frozen=True)
class Transaction:
    id: str
    user_id: str
    type: str  # "commission" | "purchase" | "deposit"
    amount: float
    status: str
    source_user_id: Optional[str] = None
    order_id: Optional[str] = None
    note: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Transaction":
        return cls(
            id=doc["id"],
            user_id=doc.get("userId", ""),
            type=doc.get("type", ""),
            amount=doc.get("amount") or 0,
            status=doc.get("status", ""),
            source_user_id=doc.get("sourceUserId"),
            order_id=doc.get("orderId"),
            note=doc.get("note"),
            created_at=doc.get("createdAt"),
        )


@dataclass(frozen=True)
class Session:
    id: str
    token: str
    user_id: str
    role: Role
    revoked: bool = False
    created_at: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Session":
        return cls(
            id=doc["id"],
            token=doc.get("token", ""),
            user_id=doc.get("userId", ""),
            role=doc.get("role", "user"),
            revoked=bool(doc.get("revoked")),
            created_at=doc.get("createdAt"),
        )
