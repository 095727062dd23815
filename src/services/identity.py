from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class FederatedIdentity:
    uid: str
    email: str
    display_name: Optional[str] = None


class IdentityProvider(Protocol):
    """
    External sign-in collaborator (e.g. Google). sign_in runs the whole exchange
    and returns the verified identity, or raises if the exchange fails.
    """

    async def sign_in(self) -> FederatedIdentity: ...
