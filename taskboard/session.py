from __future__ import annotations

import json
import logging
from typing import Dict, Iterable, List, Optional

from .models import ROLE_ADMIN
from .store import KeyValueStore


logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
ROLES_KEY = "roles"
USER_KEY = "user"
THEME_KEY = "theme"


class SessionState:
    """Credential, roles and profile mirrored from the durable store.

    The store is the source of truth. Every check that gates a request or a
    panel choice calls :meth:`load` first, because another process may have
    logged out or the API may have rejected the token since the last read.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._credential = ""
        self._roles: List[str] = []
        self._profile: Optional[Dict[str, str]] = None
        self.load()

    def load(self) -> None:
        self._credential = self.store.get(TOKEN_KEY, "") or ""
        roles = self.store.get_json(ROLES_KEY, [])
        if not isinstance(roles, list):
            roles = []
        self._roles = [str(r) for r in roles if isinstance(r, str) and r]
        profile = self.store.get_json(USER_KEY, None)
        self._profile = profile if isinstance(profile, dict) else None

    def set(self, credential: str, roles: Optional[Iterable[str]], profile: Optional[Dict[str, object]]) -> None:
        role_list = [str(r) for r in (roles or []) if r]
        self.store.set_many({
            TOKEN_KEY: credential or "",
            ROLES_KEY: json.dumps(role_list),
            USER_KEY: json.dumps(profile if isinstance(profile, dict) else None),
        })
        self.load()
        logger.info("Session stored for %s (roles=%s)", self.display_name(), ",".join(role_list) or "-")

    def clear(self) -> None:
        self.store.delete(TOKEN_KEY, ROLES_KEY, USER_KEY)
        self._credential = ""
        self._roles = []
        self._profile = None

    def is_authenticated(self) -> bool:
        self.load()
        return bool(self._credential)

    def has_role(self, name: str) -> bool:
        self.load()
        return name in self._roles

    def is_admin(self) -> bool:
        return self.has_role(ROLE_ADMIN)

    @property
    def credential(self) -> str:
        self.load()
        return self._credential

    @property
    def roles(self) -> List[str]:
        self.load()
        return list(self._roles)

    @property
    def profile(self) -> Optional[Dict[str, str]]:
        self.load()
        return dict(self._profile) if self._profile else None

    def display_name(self) -> str:
        profile = self.profile or {}
        return str(profile.get("name") or profile.get("username") or "—")

    def initials(self) -> str:
        profile = self.profile or {}
        return initials_for(str(profile.get("name") or profile.get("username") or ""))


def initials_for(name: str) -> str:
    parts = (name or "").strip().split()
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0][:2].upper()
    return (parts[0][0] + parts[-1][0]).upper()
