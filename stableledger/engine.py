"""
engine.py - Collateral engine for a unit-pegged synthetic asset

The CollateralEngine is the only component that mutates positions and debt.
It composes the registry, oracle adapters and valuation functions into the
public operations: deposit, withdraw, mint, burn, their combinations, and
liquidate.

Key responsibilities:
    - Every mutating call is one atomic transition: it works on a clone of the
      PositionLedger and publishes the clone only when every step succeeded
    - Health factors are checked against the tentative state before any
      collaborator is called
    - Collaborator effects that must be undone on a later failure register a
      compensating call, run in reverse order on rollback
    - One exclusive lock per engine; nested mutating calls on the same thread
      raise ReentrancyBlocked
    - Reads never lock: they see the last published PositionLedger
"""

from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import wraps
from typing import (
    Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Type, Union
)

from .core import (
    # Types
    AccountInformation, CollateralBalances, CollateralDeposited, CollateralRedeemed,
    CollateralToken, EngineEvent, HealthFactor, PriceFeed, PriceRound, SyntheticToken,
    # Constants
    ADDITIONAL_FEED_PRECISION, DEFAULT_ENGINE_ADDRESS, LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION, LIQUIDATION_THRESHOLD, MIN_HEALTH_FACTOR, ORACLE_TIMEOUT,
    PRECISION,
    # Exceptions
    CompensationFailed, EngineError, HealthFactorBroken, HealthFactorNotImproved,
    HealthFactorOk, LengthMismatch, MintFailed, ReentrancyBlocked, TransferFailed,
    # Helpers
    format_health_factor, optional_time, require_amount,
)
from .oracle import OracleAdapter
from .positions import PositionLedger
from .registry import CollateralRegistry
from . import valuation

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class EngineParameters:
    """
    Immutable risk parameters, fixed at engine construction.

    Attributes:
        liquidation_threshold: Percent of collateral value counted toward debt
        liquidation_bonus: Percent of covered value paid to liquidators
        min_health_factor: Lowest acceptable health factor (PRECISION == 1.0)
        oracle_timeout: Age after which a price round is refused
    """
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    min_health_factor: int = MIN_HEALTH_FACTOR
    oracle_timeout: timedelta = ORACLE_TIMEOUT

    def __post_init__(self):
        if not 0 < self.liquidation_threshold <= LIQUIDATION_PRECISION:
            raise ValueError(
                f"liquidation_threshold must be in (0, {LIQUIDATION_PRECISION}], "
                f"got {self.liquidation_threshold}"
            )
        if not 0 <= self.liquidation_bonus < LIQUIDATION_PRECISION:
            raise ValueError(
                f"liquidation_bonus must be in [0, {LIQUIDATION_PRECISION}), "
                f"got {self.liquidation_bonus}"
            )
        if self.min_health_factor <= 0:
            raise ValueError(f"min_health_factor must be positive, got {self.min_health_factor}")
        if self.oracle_timeout <= timedelta(0):
            raise ValueError(f"oracle_timeout must be positive, got {self.oracle_timeout}")


# ============================================================================
# VIEWS AND OPERATION CONTEXT
# ============================================================================

class EngineSnapshot:
    """
    Read-only EngineView over one PositionLedger at one logical time.

    Prices are read through the registry's adapters on every call.
    """

    __slots__ = ("_positions", "_registry", "_time")

    def __init__(self, positions: PositionLedger, registry: CollateralRegistry, current_time: datetime):
        self._positions = positions
        self._registry = registry
        self._time = current_time

    @property
    def current_time(self) -> datetime:
        return self._time

    def get_collateral_balance(self, user: str, asset: str) -> int:
        return self._positions.get_collateral(user, asset)

    def get_minted(self, user: str) -> int:
        return self._positions.get_minted(user)

    def list_assets(self) -> Tuple[str, ...]:
        return self._registry.list_assets()

    def latest_price(self, asset: str) -> PriceRound:
        return self._registry.oracle_for(asset).latest_price(self._time)


@dataclass
class _Operation:
    """Working state of one in-flight mutating call."""
    name: str
    positions: PositionLedger
    view: EngineSnapshot
    staged_events: List[Tuple[type, Dict[str, Any]]] = field(default_factory=list)
    compensations: List[Tuple[str, Callable[[], Any]]] = field(default_factory=list)

    def emit(self, kind: type, **fields: Any) -> None:
        self.staged_events.append((kind, fields))

    def on_rollback(self, description: str, action: Callable[[], Any]) -> None:
        self.compensations.append((description, action))


def nonreentrant(method):
    """
    Run a mutating method under the engine's exclusive lock.

    Listeners are notified of committed events after the lock is released.
    The operation is already applied by then, so a failing listener is
    logged and does not stop the others or the caller.
    """
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._exclusive(method.__name__):
            result = method(self, *args, **kwargs)
            published = self._drain_notifications()
        for event in published:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Listener %r failed on %s", listener, type(event).__name__)
        return result
    return wrapper


# ============================================================================
# ENGINE
# ============================================================================

class CollateralEngine:
    """
    Over-collateralized minting engine for one synthetic asset.

    Example:
        tokens = TokenLedger("main")
        weth = tokens.register_token("WETH")
        synth = tokens.register_synthetic("SYN", owner="engine")
        feed = StaticPriceFeed({"WETH": (2000_00000000, t0)})

        engine = CollateralEngine(
            ["WETH"], [feed],
            collateral_tokens={"WETH": weth.as_caller("engine")},
            synthetic=synth,
            initial_time=t0,
        )
        engine.deposit_and_mint("alice", "WETH", to_units(10), to_units(5000))
    """

    def __init__(
        self,
        assets: Sequence[str],
        oracles: Sequence[Union[OracleAdapter, PriceFeed]],
        collateral_tokens: Mapping[str, CollateralToken],
        synthetic: SyntheticToken,
        address: str = DEFAULT_ENGINE_ADDRESS,
        initial_time: Optional[datetime] = None,
        parameters: Optional[EngineParameters] = None,
    ):
        """
        Create an engine.

        Args:
            assets: Accepted collateral identifiers, in valuation order
            oracles: One OracleAdapter (or raw PriceFeed, wrapped with the
                     parameters' timeout) per asset, same order
            collateral_tokens: Transfer interface per asset, acting as `address`
            synthetic: Synthetic token interface, acting as `address`
            address: Holder id of the engine's custody account
            initial_time: Starting logical time (default: 1970-01-01)
            parameters: Risk parameters (default: EngineParameters())

        Raises:
            LengthMismatch: If assets and oracles differ in length
            ValueError: If an asset has no collateral token
        """
        self.parameters = parameters or EngineParameters()
        if len(assets) != len(oracles):
            raise LengthMismatch(len(assets), len(oracles))
        adapters = [
            oracle if isinstance(oracle, OracleAdapter)
            else OracleAdapter(oracle, asset, self.parameters.oracle_timeout)
            for asset, oracle in zip(assets, oracles)
        ]
        self.registry = CollateralRegistry(assets, adapters)
        missing = [a for a in self.registry.list_assets() if a not in collateral_tokens]
        if missing:
            raise ValueError(f"No collateral token for {', '.join(missing)}")

        self.address = address
        self.synthetic = synthetic
        self._collateral_tokens: Dict[str, CollateralToken] = {
            a: collateral_tokens[a] for a in self.registry.list_assets()
        }
        self._positions = PositionLedger()
        self._current_time: datetime = optional_time(initial_time)
        self.event_log: List[EngineEvent] = []
        self._pending_notifications: List[EngineEvent] = []
        self._listeners: List[Callable[[EngineEvent], None]] = []
        self._lock = threading.Lock()
        self._local = threading.local()

    # ========================================================================
    # LOCKING
    # ========================================================================

    @contextmanager
    def _exclusive(self, name: str) -> Iterator[None]:
        in_flight = getattr(self._local, "in_flight", None)
        if in_flight is not None:
            raise ReentrancyBlocked(f"{name} called while {in_flight} is in flight")
        with self._lock:
            self._local.in_flight = name
            try:
                yield
            finally:
                self._local.in_flight = None

    def _drain_notifications(self) -> List[EngineEvent]:
        published, self._pending_notifications = self._pending_notifications, []
        return published

    def subscribe(self, listener: Callable[[EngineEvent], None]) -> None:
        """Register a callback for every committed event."""
        self._listeners.append(listener)

    # ========================================================================
    # TIME
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time; oracle staleness is measured against it."""
        return self._current_time

    @nonreentrant
    def advance_time(self, new_time: datetime) -> None:
        """
        Move the logical clock forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    @contextmanager
    def _operation(self, name: str) -> Iterator[_Operation]:
        """
        Run one atomic transition.

        Yields an _Operation holding a private clone of the positions. On
        success the clone is published and staged events recorded; on any
        exception, registered compensations run in reverse and the error
        propagates.
        """
        positions = self._positions.clone()
        op = _Operation(
            name=name,
            positions=positions,
            view=EngineSnapshot(positions, self.registry, self._current_time),
        )
        try:
            yield op
        except Exception as exc:
            logger.warning("%s rejected: %s", name, exc)
            self._rollback(op, exc)
            raise
        self._commit(op)

    def _rollback(self, op: _Operation, cause: Exception) -> None:
        for description, action in reversed(op.compensations):
            logger.warning("%s rollback: %s", op.name, description)
            try:
                result = action()
            except Exception as exc:
                logger.error("%s rollback failed: %s (%s)", op.name, description, exc)
                raise CompensationFailed(
                    f"{op.name}: could not {description} after {cause!r}"
                ) from exc
            if result is False:
                logger.error("%s rollback refused: %s", op.name, description)
                raise CompensationFailed(
                    f"{op.name}: could not {description} after {cause!r}"
                ) from cause

    def _commit(self, op: _Operation) -> None:
        self._positions = op.positions
        for kind, fields in op.staged_events:
            event = kind(
                timestamp=self._current_time,
                sequence_number=len(self.event_log),
                **fields,
            )
            self.event_log.append(event)
            self._pending_notifications.append(event)
        logger.info("%s applied", op.name)

    # ========================================================================
    # COLLABORATOR CALLS
    # ========================================================================

    @staticmethod
    def _call(
        error: Type[EngineError],
        description: str,
        action: Callable[..., Any],
        *args: Any,
        expects_result: bool = True,
    ) -> None:
        """
        Invoke a collaborator and translate failure into `error`.

        A falsy result (when one is expected) or a non-engine exception both
        become `error`. EngineErrors raised inside the collaborator, such as
        ReentrancyBlocked from a nested call, propagate unchanged.
        """
        try:
            result = action(*args)
        except EngineError:
            raise
        except Exception as exc:
            raise error(f"{description} raised {exc!r}") from exc
        if expects_result and not result:
            raise error(f"{description} reported failure")

    def _pull_collateral(self, op: _Operation, asset: str, source: str, amount: int) -> None:
        token = self._collateral_tokens[asset]
        self._call(
            TransferFailed, f"transfer_from({source}, {amount} {asset})",
            token.transfer_from, source, self.address, amount,
        )
        op.on_rollback(f"return {amount} {asset} to {source}", lambda: token.transfer(source, amount))

    def _push_collateral(self, asset: str, dest: str, amount: int) -> None:
        token = self._collateral_tokens[asset]
        self._call(
            TransferFailed, f"transfer({dest}, {amount} {asset})",
            token.transfer, dest, amount,
        )

    def _pull_synthetic(self, op: _Operation, source: str, amount: int) -> None:
        self._call(
            TransferFailed, f"synthetic transfer_from({source}, {amount})",
            self.synthetic.transfer_from, source, self.address, amount,
        )
        op.on_rollback(
            f"return {amount} synthetic to {source}",
            lambda: self.synthetic.transfer(source, amount),
        )

    def _burn_synthetic(self, op: _Operation, amount: int) -> None:
        self._call(
            TransferFailed, f"synthetic burn({amount})",
            self.synthetic.burn, amount, expects_result=False,
        )
        op.on_rollback(
            f"re-mint {amount} burned synthetic",
            lambda: self.synthetic.mint(self.address, amount),
        )

    def _mint_synthetic(self, dest: str, amount: int) -> None:
        self._call(
            MintFailed, f"synthetic mint({dest}, {amount})",
            self.synthetic.mint, dest, amount,
        )

    # ========================================================================
    # PRIMITIVES (run inside an _Operation, lock already held)
    #
    # _stage_* methods only touch the tentative positions; collaborator
    # calls follow once every check has passed, pulls before pushes.
    # ========================================================================

    def _require_account(self, user: str) -> None:
        # The engine's own wallet holds custody; positions under it would
        # be credited by transfers that move nothing.
        if user == self.address:
            raise ValueError(f"Engine address {self.address!r} cannot hold a position")

    def _require_healthy(self, op: _Operation, user: str) -> HealthFactor:
        factor = valuation.health_factor(op.view, user, self.parameters.liquidation_threshold)
        if factor < self.parameters.min_health_factor:
            raise HealthFactorBroken(user, factor)
        return factor

    def _stage_deposit(self, op: _Operation, user: str, asset: str, amount: int) -> None:
        self.registry.get(asset)
        op.positions.credit_collateral(user, asset, amount)
        op.emit(CollateralDeposited, user=user, asset=asset, amount=amount)

    def _stage_withdraw(self, op: _Operation, user: str, asset: str, amount: int) -> None:
        self.registry.get(asset)
        op.positions.debit_collateral(user, asset, amount)
        op.emit(CollateralRedeemed, redeemed_from=user, redeemed_to=user, asset=asset, amount=amount)

    def _repay(self, op: _Operation, payer: str, amount: int) -> None:
        self._pull_synthetic(op, payer, amount)
        self._burn_synthetic(op, amount)

    # ========================================================================
    # OPERATIONS (Mutating)
    # ========================================================================

    @nonreentrant
    def deposit(self, user: str, asset: str, amount: int) -> None:
        """
        Lock `amount` of `asset` from `user` as collateral.

        Raises:
            ZeroAmount, UnknownAsset, TransferFailed
        """
        self._require_account(user)
        require_amount(amount)
        with self._operation("deposit") as op:
            self._stage_deposit(op, user, asset, amount)
            self._pull_collateral(op, asset, user, amount)

    @nonreentrant
    def withdraw(self, user: str, asset: str, amount: int) -> None:
        """
        Return `amount` of `asset` collateral to `user`.

        Raises:
            ZeroAmount, UnknownAsset, InsufficientCollateral,
            HealthFactorBroken, TransferFailed, StalePrice
        """
        self._require_account(user)
        require_amount(amount)
        with self._operation("withdraw") as op:
            self._stage_withdraw(op, user, asset, amount)
            self._require_healthy(op, user)
            self._push_collateral(asset, user, amount)

    @nonreentrant
    def mint(self, user: str, amount: int) -> None:
        """
        Mint `amount` of the synthetic asset to `user` against their collateral.

        Raises:
            ZeroAmount, HealthFactorBroken, MintFailed, StalePrice
        """
        self._require_account(user)
        require_amount(amount)
        with self._operation("mint") as op:
            op.positions.add_debt(user, amount)
            self._require_healthy(op, user)
            self._mint_synthetic(user, amount)

    @nonreentrant
    def burn(self, user: str, amount: int) -> None:
        """
        Repay `amount` of `user`'s debt with synthetic tokens pulled from `user`.

        Burning only lowers debt, so no health check runs.

        Raises:
            ZeroAmount, InsufficientDebt, TransferFailed
        """
        self._require_account(user)
        require_amount(amount)
        with self._operation("burn") as op:
            op.positions.reduce_debt(user, amount)
            self._repay(op, user, amount)

    @nonreentrant
    def deposit_and_mint(self, user: str, asset: str, collateral_amount: int, mint_amount: int) -> None:
        """
        Deposit collateral and mint against it as one transition.

        The health check sees both changes; if minting fails the deposit is
        returned.
        """
        self._require_account(user)
        require_amount(collateral_amount)
        require_amount(mint_amount)
        with self._operation("deposit_and_mint") as op:
            self._stage_deposit(op, user, asset, collateral_amount)
            op.positions.add_debt(user, mint_amount)
            self._require_healthy(op, user)
            self._pull_collateral(op, asset, user, collateral_amount)
            self._mint_synthetic(user, mint_amount)

    @nonreentrant
    def redeem_and_burn(self, user: str, asset: str, collateral_amount: int, burn_amount: int) -> None:
        """Repay debt and withdraw collateral as one transition."""
        self._require_account(user)
        require_amount(collateral_amount)
        require_amount(burn_amount)
        with self._operation("redeem_and_burn") as op:
            op.positions.reduce_debt(user, burn_amount)
            self._stage_withdraw(op, user, asset, collateral_amount)
            self._require_healthy(op, user)
            self._repay(op, user, burn_amount)
            self._push_collateral(asset, user, collateral_amount)

    @nonreentrant
    def liquidate(self, liquidator: str, target: str, asset: str, debt_to_cover: int) -> int:
        """
        Cover part of an under-collateralized account's debt for a bonus.

        The liquidator pays `debt_to_cover` in synthetic tokens and receives
        the equivalent amount of `asset` plus LIQUIDATION_BONUS percent,
        seized from the target's position.

        Once the target's collateral is worth 110% of its debt or less, no
        liquidation can improve its health factor; such calls fail with
        HealthFactorNotImproved or InsufficientCollateral.

        Returns:
            Quantity of `asset` transferred to the liquidator

        Raises:
            ZeroAmount, UnknownAsset, HealthFactorOk, InsufficientCollateral,
            InsufficientDebt, HealthFactorNotImproved, HealthFactorBroken,
            TransferFailed, StalePrice, DivideByZeroPrice
        """
        self._require_account(liquidator)
        self._require_account(target)
        require_amount(debt_to_cover)
        self.registry.get(asset)
        threshold = self.parameters.liquidation_threshold
        with self._operation("liquidate") as op:
            starting = valuation.health_factor(op.view, target, threshold)
            if starting >= self.parameters.min_health_factor:
                raise HealthFactorOk(target, starting)

            covered = valuation.token_amount_from_usd(op.view, asset, debt_to_cover)
            seized, bonus = valuation.calculate_liquidation_seizure(
                covered, self.parameters.liquidation_bonus
            )
            op.positions.debit_collateral(target, asset, seized)
            op.positions.reduce_debt(target, debt_to_cover)

            ending = valuation.health_factor(op.view, target, threshold)
            if ending <= starting:
                raise HealthFactorNotImproved(target, starting, ending)
            self._require_healthy(op, liquidator)

            # Collateral leaves custody only after the covered debt is burned.
            self._repay(op, liquidator, debt_to_cover)
            self._push_collateral(asset, liquidator, seized)
            op.emit(
                CollateralRedeemed,
                redeemed_from=target, redeemed_to=liquidator, asset=asset, amount=seized,
            )
            logger.info(
                "liquidated %s: covered %s, seized %s %s (bonus %s), health %s -> %s",
                target, debt_to_cover, seized, asset, bonus,
                format_health_factor(starting), format_health_factor(ending),
            )
        return seized

    # ========================================================================
    # READS (never lock)
    # ========================================================================

    def snapshot(self) -> EngineSnapshot:
        """Consistent read-only view of the last published state."""
        return EngineSnapshot(self._positions, self.registry, self._current_time)

    def get_collateral_balance(self, user: str, asset: str) -> int:
        return self._positions.get_collateral(user, asset)

    def get_collateral_balances(self, user: str) -> CollateralBalances:
        return self._positions.get_collateral_balances(user)

    def get_minted(self, user: str) -> int:
        return self._positions.get_minted(user)

    def get_account_information(self, user: str) -> AccountInformation:
        return valuation.account_information(self.snapshot(), user)

    def get_account_collateral_value(self, user: str) -> int:
        return valuation.total_collateral_value(self.snapshot(), user)

    def usd_value(self, asset: str, amount: int) -> int:
        """Value of `amount` of `asset` in the unit of account."""
        return valuation.usd_value(self.snapshot(), asset, amount)

    def token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        """Quantity of `asset` worth `usd_amount`."""
        return valuation.token_amount_from_usd(self.snapshot(), asset, usd_amount)

    def total_collateral_value(self, user: str) -> int:
        return valuation.total_collateral_value(self.snapshot(), user)

    def health_factor(self, user: str) -> HealthFactor:
        """Current health factor of `user` (PRECISION == 1.0, inf without debt)."""
        return valuation.health_factor(
            self.snapshot(), user, self.parameters.liquidation_threshold
        )

    def calculate_health_factor(self, minted: int, collateral_value: int) -> HealthFactor:
        """Health factor for hypothetical debt and collateral value."""
        return valuation.calculate_health_factor(
            minted, collateral_value, self.parameters.liquidation_threshold
        )

    def total_minted(self) -> int:
        return self._positions.total_minted()

    def total_deposited(self, asset: str) -> int:
        self.registry.get(asset)
        return self._positions.total_deposited(asset)

    def list_users(self) -> List[str]:
        return self._positions.list_users()

    # ========================================================================
    # PARAMETER GETTERS
    # ========================================================================

    def get_precision(self) -> int:
        return PRECISION

    def get_additional_feed_precision(self) -> int:
        return ADDITIONAL_FEED_PRECISION

    def get_liquidation_threshold(self) -> int:
        return self.parameters.liquidation_threshold

    def get_liquidation_bonus(self) -> int:
        return self.parameters.liquidation_bonus

    def get_liquidation_precision(self) -> int:
        return LIQUIDATION_PRECISION

    def get_min_health_factor(self) -> int:
        return self.parameters.min_health_factor

    def get_collateral_assets(self) -> Tuple[str, ...]:
        return self.registry.list_assets()

    def get_collateral_oracle(self, asset: str) -> OracleAdapter:
        return self.registry.oracle_for(asset)

    def get_synthetic(self) -> SyntheticToken:
        return self.synthetic

    def __repr__(self):
        return (
            f"CollateralEngine({', '.join(self.registry.list_assets())}, "
            f"users={len(self._positions.list_users())}, minted={self.total_minted()})"
        )
