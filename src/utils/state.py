from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from db.models import User
from db.store import DocumentStore
from services.admin import AdminService
from services.identity import IdentityProvider
from services.ledger import LedgerEngine
from services.projection import Projection
from services.session import SessionManager
from utils.config import BackendConfig, build_store


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - config: resolved backend settings (offline flag lives here)
      - store: the persistence backend every service shares
      - sessions / ledger / admin: the operations screens call
      - projection: live in-memory copy of users, products, orders, transactions
      - admin_route: True when the app was opened on the admin console route
    """

    config: BackendConfig
    store: DocumentStore
    sessions: SessionManager
    ledger: LedgerEngine
    admin: AdminService
    projection: Projection
    admin_route: bool = False

    @classmethod
    def from_config(
        cls,
        config: BackendConfig,
        identity_provider: Optional[IdentityProvider] = None,
        admin_route: bool = False,
    ) -> "GlobalState":
        store = build_store(config)
        # federated sign-in needs the hosted backend
        sessions = SessionManager(
            store, identity_provider if not config.offline else None
        )
        ledger = LedgerEngine(store)
        return cls(
            config=config,
            store=store,
            sessions=sessions,
            ledger=ledger,
            admin=AdminService(sessions, ledger),
            projection=Projection(store),
            admin_route=admin_route,
        )

    @property
    def user(self) -> Optional[User]:
        return self.sessions.current_user

    @property
    def token(self) -> Optional[str]:
        return self.sessions.token

    def start(self) -> None:
        self.projection.start()

    async def end_session(self) -> None:
        """
        End the current session if one exists.
        This is only called upon logging out or quitting
        """
        if self.sessions.authenticated:
            await self.sessions.logout()

    async def close(self) -> None:
        await self.end_session()
        self.projection.stop()
        await self.store.close()
