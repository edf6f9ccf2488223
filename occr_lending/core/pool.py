"""Collateralized lending pool with score-aware LTV limits and liquidation.

Every mutating operation validates first and commits last. External asset
transfers happen after validation and before the position is written, so a
failed transfer leaves the pool untouched. Mutating operations are
non-reentrant: a nested call while one is in flight raises
:class:`ReentrantCall`.
"""
from __future__ import annotations

import functools
import logging
import time
from dataclasses import replace
from typing import Any, Callable, TypeVar

from ..assets.units import to_units
from ..config import PoolConfig
from ..errors import (
    AlreadyConfigured,
    ExceedsLTV,
    IdentityNotVerified,
    InsufficientBalance,
    InvalidAmount,
    LendingError,
    NotUnderwater,
    ReentrantCall,
    StaleOrInvalidPrice,
    Unauthorized,
)
from ..interfaces.asset import AssetLedger
from ..models import CreditEvent, Position, PriceQuote
from . import risk
from .identity import IdentityVerifier
from .score import OCCRScore

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _operation(method: F) -> F:
    """Serialize pool operations and log rejections."""

    @functools.wraps(method)
    def wrapper(self: "LendingPool", *args: Any, **kwargs: Any) -> Any:
        if self._entered:
            raise ReentrantCall(f"{method.__name__} called during another pool operation")
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        except LendingError as e:
            logger.warning("%s rejected (%s): %s", method.__name__, e.code, e)
            raise
        finally:
            self._entered = False

    return wrapper  # type: ignore[return-value]


def _require_positive(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")


class LendingPool:
    """Single-market pool: one collateral asset, one debt asset, one price."""

    def __init__(
        self,
        address: str,
        collateral_asset: AssetLedger,
        debt_asset: AssetLedger,
        admin: str,
        config: PoolConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.address = address
        self.collateral_asset = collateral_asset
        self.debt_asset = debt_asset
        self.admin = admin
        self._config = config or PoolConfig()
        self._clock = clock

        self._positions: dict[str, Position] = {}
        self._total_buffer = 0
        self._price = to_units(self._config.initial_price, 18)
        self._price_time = 0

        self._score: OCCRScore | None = None
        self._identity: IdentityVerifier | None = None
        self._entered = False

    # ------------------------------------------------------------------
    # Wiring and admin
    # ------------------------------------------------------------------

    @_operation
    def set_refs(self, caller: str, score: OCCRScore, identity: IdentityVerifier) -> None:
        """Wire the score and identity collaborators. Allowed exactly once."""
        self._require_admin(caller)
        if self._score is not None or self._identity is not None:
            raise AlreadyConfigured("pool references already set")
        self._score = score
        self._identity = identity
        logger.info("Pool %s wired to score and identity", self.address)

    @_operation
    def set_price(self, caller: str, new_price: int) -> None:
        self._require_admin(caller)
        if not isinstance(new_price, int) or isinstance(new_price, bool) or new_price <= 0:
            raise StaleOrInvalidPrice(f"price must be a positive integer, got {new_price!r}")
        self._price = new_price
        self._price_time = int(self._clock())
        logger.info("Price set to %d", new_price)

    @_operation
    def update_price(self, caller: str, quote: PriceQuote) -> None:
        """Apply an oracle quote, rejecting stale or out-of-order ones."""
        self._require_admin(caller)
        if quote.price <= 0:
            raise StaleOrInvalidPrice(f"non-positive oracle price {quote.price}")
        if quote.publish_time < self._price_time:
            raise StaleOrInvalidPrice(
                f"quote published at {quote.publish_time} is older than current price"
            )
        max_age = self._config.max_price_age_seconds
        if max_age and self._clock() - quote.publish_time > max_age:
            raise StaleOrInvalidPrice(
                f"quote published at {quote.publish_time} exceeds max age {max_age}s"
            )
        self._price = quote.price
        self._price_time = quote.publish_time
        logger.info("Price updated to %d (published %d)", quote.price, quote.publish_time)

    # ------------------------------------------------------------------
    # Collateral
    # ------------------------------------------------------------------

    @_operation
    def deposit(self, caller: str, amount: int) -> None:
        _require_positive(amount)
        position = self.position(caller)
        if not self.collateral_asset.transfer_from(self.address, caller, self.address, amount):
            raise InsufficientBalance(
                f"{caller} lacks {self.collateral_asset.symbol} balance or allowance for {amount}"
            )
        self._write(caller, replace(position, collateral=position.collateral + amount))
        logger.info("Deposit %d by %s", amount, caller)

    @_operation
    def withdraw(self, caller: str, amount: int) -> None:
        _require_positive(amount)
        position = self.position(caller)
        if amount > position.collateral:
            raise InsufficientBalance(
                f"withdraw {amount} exceeds collateral {position.collateral}"
            )
        remaining = position.collateral - amount
        limit = risk.max_debt_at(remaining, self._price, self.max_ltv_bps(caller))
        if position.debt > limit:
            raise ExceedsLTV(f"withdraw would leave debt {position.debt} above limit {limit}")
        if not self.collateral_asset.transfer(self.address, caller, amount):
            raise InsufficientBalance("pool could not release collateral")
        self._write(caller, replace(position, collateral=remaining))
        logger.info("Withdraw %d by %s", amount, caller)

    # ------------------------------------------------------------------
    # Debt
    # ------------------------------------------------------------------

    @_operation
    def borrow(self, caller: str, amount: int) -> None:
        _require_positive(amount)
        score, identity = self._require_refs()
        if not identity.is_verified(caller):
            raise IdentityNotVerified(f"{caller} has not verified identity")

        position = self.position(caller)
        limit = risk.max_debt_at(
            position.collateral, self._price, self.max_ltv_bps(caller)
        )
        if position.debt + amount > limit:
            raise ExceedsLTV(
                f"debt {position.debt} + {amount} exceeds borrow limit {limit}"
            )
        if amount > self.available_liquidity():
            raise InsufficientBalance(f"pool liquidity below {amount}")
        if not self.debt_asset.transfer(self.address, caller, amount):
            raise InsufficientBalance("pool could not pay out the loan")

        self._write(caller, replace(position, debt=position.debt + amount))
        score.record_event(self.address, caller, CreditEvent.BORROW, amount)
        logger.info("Borrow %d by %s (debt now %d)", amount, caller, position.debt + amount)

    @_operation
    def repay(self, caller: str, amount: int) -> int:
        """Repay own debt; excess over the outstanding debt is not pulled."""
        return self._repay(caller, caller, amount)

    @_operation
    def repay_on_behalf(self, caller: str, borrower: str, amount: int) -> int:
        """Repay ``borrower``'s debt with ``caller``'s funds."""
        return self._repay(caller, borrower, amount)

    def _repay(self, payer: str, borrower: str, amount: int) -> int:
        _require_positive(amount)
        score, _ = self._require_refs()
        position = self.position(borrower)
        if position.debt == 0:
            raise InvalidAmount(f"{borrower} has no outstanding debt")

        paid = min(amount, position.debt)
        if not self.debt_asset.transfer_from(self.address, payer, self.address, paid):
            raise InsufficientBalance(
                f"{payer} lacks {self.debt_asset.symbol} balance or allowance for {paid}"
            )
        self._write(borrower, replace(position, debt=position.debt - paid))
        score.record_event(
            self.address, borrower, CreditEvent.REPAY, paid, debt_before=position.debt
        )
        logger.info(
            "Repay %d for %s by %s (debt now %d)", paid, borrower, payer, position.debt - paid
        )
        return paid

    # ------------------------------------------------------------------
    # Repay buffer
    # ------------------------------------------------------------------

    @_operation
    def deposit_buffer(self, caller: str, amount: int) -> None:
        _require_positive(amount)
        position = self.position(caller)
        if not self.debt_asset.transfer_from(self.address, caller, self.address, amount):
            raise InsufficientBalance(
                f"{caller} lacks {self.debt_asset.symbol} balance or allowance for {amount}"
            )
        self._write(caller, replace(position, buffer=position.buffer + amount))
        self._total_buffer += amount
        logger.info("Buffer deposit %d by %s", amount, caller)

    @_operation
    def withdraw_buffer(self, caller: str, amount: int) -> None:
        _require_positive(amount)
        position = self.position(caller)
        if amount > position.buffer:
            raise InsufficientBalance(f"withdraw {amount} exceeds buffer {position.buffer}")
        if not self.debt_asset.transfer(self.address, caller, amount):
            raise InsufficientBalance("pool could not release buffer")
        self._write(caller, replace(position, buffer=position.buffer - amount))
        self._total_buffer -= amount
        logger.info("Buffer withdraw %d by %s", amount, caller)

    @_operation
    def repay_from_buffer(self, caller: str, amount: int) -> None:
        _require_positive(amount)
        score, _ = self._require_refs()
        position = self.position(caller)
        if amount > position.buffer:
            raise InsufficientBalance(f"repay {amount} exceeds buffer {position.buffer}")
        if amount > position.debt:
            raise InvalidAmount(f"repay {amount} exceeds debt {position.debt}")

        self._write(
            caller,
            replace(position, buffer=position.buffer - amount, debt=position.debt - amount),
        )
        self._total_buffer -= amount
        score.record_event(
            self.address, caller, CreditEvent.REPAY, amount, debt_before=position.debt
        )
        logger.info("Buffer repay %d by %s", amount, caller)

    # ------------------------------------------------------------------
    # Liquidation
    # ------------------------------------------------------------------

    @_operation
    def liquidate(self, caller: str, user: str, repay_amount: int) -> int:
        """Repay part of an underwater position and seize collateral.

        The liquidator receives collateral worth ``repay_amount`` plus
        ``liquidation_bonus_bps`` at the current price, capped at the
        user's collateral. Returns the seized collateral amount.
        """
        _require_positive(repay_amount)
        score, _ = self._require_refs()
        position = self.position(user)
        if not self.is_underwater(user):
            raise NotUnderwater(f"{user} is not underwater")
        if repay_amount > position.debt:
            raise InvalidAmount(f"repay {repay_amount} exceeds debt {position.debt}")

        seized = min(
            risk.seize_amount(repay_amount, self._price, self._config.liquidation_bonus_bps),
            position.collateral,
        )
        if not self.debt_asset.transfer_from(self.address, caller, self.address, repay_amount):
            raise InsufficientBalance(
                f"{caller} lacks {self.debt_asset.symbol} balance or allowance for {repay_amount}"
            )
        if not self.collateral_asset.transfer(self.address, caller, seized):
            # hand the repayment back so the pool state stays untouched
            if not self.debt_asset.transfer(self.address, caller, repay_amount):
                logger.error(
                    "Refund of %d %s to %s failed after aborted liquidation of %s",
                    repay_amount, self.debt_asset.symbol, caller, user,
                )
                raise InsufficientBalance(
                    f"pool could not release seized collateral or refund {repay_amount} "
                    f"{self.debt_asset.symbol} to {caller}"
                )
            raise InsufficientBalance("pool could not release seized collateral")

        self._write(
            user,
            replace(
                position,
                debt=position.debt - repay_amount,
                collateral=position.collateral - seized,
            ),
        )
        score.record_event(self.address, user, CreditEvent.LIQUIDATION, repay_amount)
        logger.info(
            "Liquidation of %s by %s: repaid %d, seized %d", user, caller, repay_amount, seized
        )
        return seized

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def price(self) -> int:
        return self._price

    @property
    def price_time(self) -> int:
        return self._price_time

    @property
    def base_ltv_bps(self) -> int:
        return self._config.base_ltv_bps

    @property
    def liquidation_threshold_bps(self) -> int:
        return self._config.liquidation_threshold_bps

    @property
    def score(self) -> OCCRScore | None:
        return self._score

    @property
    def identity(self) -> IdentityVerifier | None:
        return self._identity

    def position(self, user: str) -> Position:
        return self._positions.get(user, Position())

    def get_user_positions(self, user: str) -> tuple[int, int, int]:
        """Return ``(collateral, debt, buffer)`` for ``user``."""
        return self.position(user).as_tuple()

    def collateral_balance(self, user: str) -> int:
        return self.position(user).collateral

    def debt_balance(self, user: str) -> int:
        return self.position(user).debt

    def buffer_balance(self, user: str) -> int:
        return self.position(user).buffer

    def max_ltv_bps(self, user: str) -> int:
        if self._score is None:
            return self._config.base_ltv_bps
        return self._score.get_max_ltv_bps(user, self._config.base_ltv_bps)

    def max_borrowable(self, user: str) -> int:
        """Remaining borrow headroom for ``user`` at the current price."""
        position = self.position(user)
        limit = risk.max_debt_at(position.collateral, self._price, self.max_ltv_bps(user))
        return max(limit - position.debt, 0)

    def is_underwater(self, user: str) -> bool:
        position = self.position(user)
        return risk.is_underwater(
            position.collateral,
            position.debt,
            self._price,
            self._config.liquidation_threshold_bps,
        )

    def available_liquidity(self) -> int:
        """Debt-asset balance that is not earmarked as a repay buffer."""
        return max(self.debt_asset.balance_of(self.address) - self._total_buffer, 0)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_admin(self, caller: str) -> None:
        if caller != self.admin:
            raise Unauthorized(f"{caller} is not the pool admin")

    def _require_refs(self) -> tuple[OCCRScore, IdentityVerifier]:
        if self._score is None or self._identity is None:
            raise Unauthorized("pool references are not set")
        if self._score.pool != self.address:
            raise Unauthorized("pool is not the authorized score writer")
        return self._score, self._identity

    def _write(self, user: str, position: Position) -> None:
        self._positions[user] = position
