# Overview: Identity port; resolves a bearer token into the authenticated principal.

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as seen by the settlement services."""

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    is_admin: bool = False


class IdentityResolver(ABC):
    @abstractmethod
    def resolve(self, token: str) -> Optional[Principal]:
        """Return the principal for a bearer token, or None if it is not valid."""
        ...


class StaticTokenIdentity(IdentityResolver):
    """
    Token table configured up front.

    Used in development and tests; a deployment plugs in a resolver backed by
    its own session store.
    """

    def __init__(self, tokens: Optional[dict[str, Principal]] = None) -> None:
        self.tokens: dict[str, Principal] = dict(tokens or {})

    @classmethod
    def from_config(cls, raw: str) -> "StaticTokenIdentity":
        """Parse "token:user_id:email[:admin]" entries separated by ";"."""
        tokens: dict[str, Principal] = {}
        for entry in (raw or "").split(";"):
            parts = [part.strip() for part in entry.split(":")]
            if len(parts) < 2 or not parts[0] or not parts[1]:
                continue
            email = parts[2] if len(parts) > 2 and parts[2] else None
            is_admin = len(parts) > 3 and parts[3].lower() == "admin"
            tokens[parts[0]] = Principal(user_id=parts[1], email=email, is_admin=is_admin)
        return cls(tokens)

    def add(self, token: str, principal: Principal) -> None:
        self.tokens[token] = principal

    def resolve(self, token: str) -> Optional[Principal]:
        return self.tokens.get(token)
