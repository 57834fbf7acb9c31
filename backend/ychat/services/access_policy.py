# backend/ychat/services/access_policy.py

from __future__ import annotations

import hmac
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ychat.core.errors import AccessDeniedError

logger = logging.getLogger(__name__)


class AccessPolicy(ABC):
    """Decides whether a join request may enter a room."""

    @abstractmethod
    def check(self, room: str, username: str, passkey: Optional[str]) -> None:
        """Raise AccessDeniedError to turn the request away."""


class OpenAccessPolicy(AccessPolicy):
    """Every room is open to everyone."""

    def check(self, room: str, username: str, passkey: Optional[str]) -> None:
        return None


class PasskeyAccessPolicy(AccessPolicy):
    """
    Rooms listed in `passkeys` require the matching passkey; all other
    rooms stay open.
    """

    def __init__(self, passkeys: Dict[str, str]) -> None:
        self.passkeys = dict(passkeys)

    def check(self, room: str, username: str, passkey: Optional[str]) -> None:
        expected = self.passkeys.get(room)
        if expected is None:
            return
        if passkey is None or not hmac.compare_digest(passkey.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("Rejected %s from room '%s': bad passkey", username, room)
            raise AccessDeniedError("Invalid passkey for this room")


def build_access_policy(passkeys: Dict[str, str]) -> AccessPolicy:
    if passkeys:
        return PasskeyAccessPolicy(passkeys)
    return OpenAccessPolicy()
