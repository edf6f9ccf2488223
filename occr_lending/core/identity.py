"""Identity gate: one verified flag per address."""
from __future__ import annotations

import logging

from ..errors import Unauthorized

logger = logging.getLogger(__name__)


class IdentityVerifier:
    """Tracks which addresses have passed identity verification.

    Records are created on first verification and never deleted. The proof
    passed to :meth:`verify_identity` is accepted opaquely.
    """

    def __init__(self, admin: str) -> None:
        self.admin = admin
        self._verified: dict[str, bool] = {}

    def verify_identity(self, caller: str, proof: bytes | str) -> None:
        """Mark ``caller`` as verified. Verifying twice is a no-op."""
        if self._verified.get(caller):
            return
        self._verified[caller] = True
        logger.info("Identity verified for %s", caller)

    def admin_set_verified(self, caller: str, address: str, verified: bool) -> None:
        if caller != self.admin:
            raise Unauthorized(f"{caller} is not the identity admin")
        self._verified[address] = bool(verified)
        logger.info("Identity for %s set to %s by admin", address, verified)

    def is_verified(self, address: str) -> bool:
        return self._verified.get(address, False)
