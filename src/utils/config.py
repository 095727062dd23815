"""
Backend connection settings resolved from the environment.

Every named parameter is read as SHOP_<NAME>, falling back to FIREBASE_<NAME>
so existing hosted-store env files keep working. A missing API key puts the
whole app in offline (demo) mode, backed by the local store.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from db.local_store import LocalStore
from db.sqlite_store import SqliteStore
from db.store import DocumentStore
from utils.logger import get_logger

_logger = get_logger(__name__)

ENV_PREFIXES = ("SHOP_", "FIREBASE_")

DEFAULT_DATABASE_PATH = "data/shop.sqlite"
DEFAULT_LOCAL_PATH = "data/local"


def _lookup(env: Mapping[str, str], name: str) -> Optional[str]:
    for prefix in ENV_PREFIXES:
        value = env.get(prefix + name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class BackendConfig:
    api_key: Optional[str] = None
    auth_domain: Optional[str] = None
    project_id: Optional[str] = None
    storage_bucket: Optional[str] = None
    messaging_sender_id: Optional[str] = None
    app_id: Optional[str] = None

    database_path: str = DEFAULT_DATABASE_PATH
    local_path: Optional[str] = DEFAULT_LOCAL_PATH

    @property
    def offline(self) -> bool:
        return not self.api_key

    @property
    def mode(self) -> str:
        return "offline (demo)" if self.offline else "online"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "BackendConfig":
        env = os.environ if env is None else env
        return cls(
            api_key=_lookup(env, "API_KEY"),
            auth_domain=_lookup(env, "AUTH_DOMAIN"),
            project_id=_lookup(env, "PROJECT_ID"),
            storage_bucket=_lookup(env, "STORAGE_BUCKET"),
            messaging_sender_id=_lookup(env, "MESSAGING_SENDER_ID"),
            app_id=_lookup(env, "APP_ID"),
            database_path=env.get("SHOP_DATABASE_PATH") or DEFAULT_DATABASE_PATH,
            local_path=env.get("SHOP_LOCAL_PATH") or DEFAULT_LOCAL_PATH,
        )


def build_store(config: BackendConfig) -> DocumentStore:
    """Pick the persistence backend for the given config."""
    if config.offline:
        _logger.warning(
            "No API key configured, running in offline (demo) mode. "
            f"Data is kept under {config.local_path}."
        )
        return LocalStore(config.local_path)

    _logger.info(
        f"Using hosted store for project {config.project_id or '-'} "
        f"at {config.database_path}."
    )
    return SqliteStore(config.database_path)
