"""
tokens.py - In-memory token ledger for collateral and synthetic assets

A double-entry balance book the engine can be wired to end to end. Token
handles expose the ERC20-style interfaces the engine expects
(CollateralToken, SyntheticToken) on top of one shared TokenLedger.

Key responsibilities:
    - Executes batches of moves atomically (all moves succeed or all fail)
    - Issues and destroys supply through SYSTEM_WALLET, so every symbol sums to zero
    - Tracks allowances for transfer_from
    - Records every applied batch in transaction_log

Usage:
    tokens = TokenLedger("main")
    weth = tokens.register_token("WETH")          # handle bound to SYSTEM_WALLET
    tokens.issue("WETH", "alice", to_units(10))
    weth.as_caller("alice").approve("engine", to_units(10))
"""

from __future__ import annotations
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


# Reserved holder for issuance and destruction. Exempt from balance checks.
SYSTEM_WALLET = "system"


class ExecuteResult(Enum):
    """
    Outcome of a batch execution attempt.

    APPLIED: Every move was validated and applied.
    REJECTED: Validation failed; no move was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class TokenError(Exception):
    """Base exception for token ledger errors."""
    pass


class TokenNotRegistered(TokenError):
    """Raised when operating on a symbol the ledger does not know."""
    pass


class MustBeMoreThanZero(TokenError):
    """Raised when minting or burning a non-positive amount."""
    pass


class BurnAmountExceedsBalance(TokenError):
    """Raised when burning more than the caller holds."""
    pass


class NotOwner(TokenError):
    """Raised when a non-owner attempts an owner-only action."""
    pass


# ============================================================================
# MOVES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of a token between two holders.

    Attributes:
        quantity: Fixed-point amount to transfer (positive int)
        symbol: Token symbol
        source: Holder debited
        dest: Holder credited
        memo: Why the move happened (e.g. "transfer", "mint")
    """
    quantity: int
    symbol: str
    source: str
    dest: str
    memo: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Move symbol cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.symbol}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class TokenTransaction:
    """An applied batch of moves, as recorded in the transaction log."""
    moves: Tuple[Move, ...]
    sequence_number: int


# ============================================================================
# LEDGER
# ============================================================================

class TokenLedger:
    """
    Balance book for any number of token symbols.

    Thread Safety:
        Not thread-safe. Share one instance per engine under the engine's lock.
    """

    def __init__(self, name: str = "tokens"):
        self.name = name
        self.tokens: List[str] = []
        self.balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        # (symbol, owner, spender) -> remaining allowance
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.transaction_log: List[TokenTransaction] = []

    # ------------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------------

    def register_token(self, symbol: str) -> LedgerToken:
        """
        Register a token symbol and return a handle bound to SYSTEM_WALLET.

        Raises:
            ValueError: If symbol is already registered
        """
        if symbol in self.tokens:
            raise ValueError(f"Token {symbol} already registered")
        self.tokens.append(symbol)
        return LedgerToken(self, symbol, SYSTEM_WALLET)

    def register_synthetic(self, symbol: str, owner: str) -> SyntheticLedgerToken:
        """Register the synthetic asset and return a handle bound to its owner."""
        self.register_token(symbol)
        return SyntheticLedgerToken(self, symbol, owner, owner)

    def _require_token(self, symbol: str) -> None:
        if symbol not in self.tokens:
            raise TokenNotRegistered(f"Token {symbol} not registered")

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    def balance_of(self, holder: str, symbol: str) -> int:
        """Balance of a holder (0 if never funded)."""
        self._require_token(symbol)
        return self.balances[holder].get(symbol, 0)

    def allowance(self, symbol: str, owner: str, spender: str) -> int:
        """Remaining amount spender may move out of owner's balance."""
        return self.allowances.get((symbol, owner, spender), 0)

    def total_supply(self, symbol: str) -> int:
        """Outstanding supply: everything issued out of SYSTEM_WALLET."""
        self._require_token(symbol)
        return -self.balances[SYSTEM_WALLET].get(symbol, 0)

    def verify_conservation(self, expected_supplies: Optional[Dict[str, int]] = None) -> Dict[str, object]:
        """
        Check that every symbol sums to zero across holders (SYSTEM_WALLET included).

        Args:
            expected_supplies: Optional symbol -> expected outstanding supply

        Returns:
            Dict with 'valid' (bool), 'supplies' and 'discrepancies'
        """
        supplies: Dict[str, int] = {}
        discrepancies = []
        for symbol in self.tokens:
            net = sum(self.balances[h].get(symbol, 0) for h in sorted(self.balances))
            supplies[symbol] = self.total_supply(symbol)
            if net != 0:
                discrepancies.append({'symbol': symbol, 'net': net})
            if expected_supplies and symbol in expected_supplies:
                if supplies[symbol] != expected_supplies[symbol]:
                    discrepancies.append({
                        'symbol': symbol,
                        'expected': expected_supplies[symbol],
                        'actual': supplies[symbol],
                    })
        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ------------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------------

    def approve(self, symbol: str, owner: str, spender: str, amount: int) -> None:
        """Set (not add to) spender's allowance over owner's balance."""
        self._require_token(symbol)
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative, got {amount}")
        self.allowances[(symbol, owner, spender)] = amount

    def spend_allowance(self, symbol: str, owner: str, spender: str, amount: int) -> bool:
        """Consume allowance; returns False without change if insufficient."""
        current = self.allowance(symbol, owner, spender)
        if current < amount:
            return False
        self.allowances[(symbol, owner, spender)] = current - amount
        return True

    def issue(self, symbol: str, holder: str, amount: int) -> ExecuteResult:
        """Create new supply for a holder out of SYSTEM_WALLET."""
        return self.execute([Move(amount, symbol, SYSTEM_WALLET, holder, "issue")])

    def execute(self, moves: Sequence[Move]) -> ExecuteResult:
        """
        Apply a batch of moves atomically.

        Every source except SYSTEM_WALLET must end the batch with a
        non-negative balance. Validation runs on net changes before anything
        is written.

        Returns:
            ExecuteResult.APPLIED or ExecuteResult.REJECTED
        """
        if not moves:
            return ExecuteResult.APPLIED

        for move in moves:
            if move.symbol not in self.tokens:
                logger.warning("REJECTED: token not registered: %s", move.symbol)
                return ExecuteResult.REJECTED

        net: Dict[Tuple[str, str], int] = {}
        for move in moves:
            key_src = (move.source, move.symbol)
            key_dst = (move.dest, move.symbol)
            net[key_src] = net.get(key_src, 0) - move.quantity
            net[key_dst] = net.get(key_dst, 0) + move.quantity

        for (holder, symbol), delta in net.items():
            if holder == SYSTEM_WALLET:
                continue
            proposed = self.balances[holder].get(symbol, 0) + delta
            if proposed < 0:
                logger.warning("REJECTED: %s %s would be %s", holder, symbol, proposed)
                return ExecuteResult.REJECTED

        for move in moves:
            self.balances[move.source][move.symbol] -= move.quantity
            self.balances[move.dest][move.symbol] += move.quantity

        self.transaction_log.append(TokenTransaction(tuple(moves), len(self.transaction_log)))
        logger.debug("APPLIED: %s", list(moves))
        return ExecuteResult.APPLIED


# ============================================================================
# TOKEN HANDLES
# ============================================================================

class LedgerToken:
    """
    ERC20-style view of one symbol, acting as `caller`.

    transfer() spends the caller's balance; transfer_from() spends `source`'s
    balance and needs an allowance unless source is the caller. Zero-amount
    transfers succeed without touching the ledger.
    """

    def __init__(self, ledger: TokenLedger, symbol: str, caller: str):
        self.ledger = ledger
        self.symbol = symbol
        self.caller = caller

    def as_caller(self, holder: str) -> LedgerToken:
        """Same token, acting on behalf of another holder."""
        return LedgerToken(self.ledger, self.symbol, holder)

    def balance_of(self, holder: str) -> int:
        return self.ledger.balance_of(holder, self.symbol)

    def total_supply(self) -> int:
        return self.ledger.total_supply(self.symbol)

    def allowance(self, owner: str, spender: str) -> int:
        return self.ledger.allowance(self.symbol, owner, spender)

    def approve(self, spender: str, amount: int) -> bool:
        self.ledger.approve(self.symbol, self.caller, spender, amount)
        return True

    def transfer(self, dest: str, amount: int) -> bool:
        return self._move(self.caller, dest, amount, "transfer")

    def transfer_from(self, source: str, dest: str, amount: int) -> bool:
        if amount == 0:
            return True
        if source != self.caller:
            if self.allowance(source, self.caller) < amount:
                return False
            if self.balance_of(source) < amount:
                return False
            self.ledger.spend_allowance(self.symbol, source, self.caller, amount)
        return self._move(source, dest, amount, "transfer_from")

    def _move(self, source: str, dest: str, amount: int, memo: str) -> bool:
        if amount == 0 or source == dest:
            return amount >= 0
        if amount < 0:
            return False
        result = self.ledger.execute([Move(amount, self.symbol, source, dest, memo)])
        return result == ExecuteResult.APPLIED

    def __repr__(self):
        return f"{type(self).__name__}({self.symbol}, caller={self.caller})"


class SyntheticLedgerToken(LedgerToken):
    """
    The pegged synthetic asset: a LedgerToken whose supply only `owner` controls.

    mint() returns False for any caller but the owner. burn() destroys the
    caller's own tokens and raises on invalid amounts.
    """

    def __init__(self, ledger: TokenLedger, symbol: str, caller: str, owner: str):
        super().__init__(ledger, symbol, caller)
        self.owner = owner

    def as_caller(self, holder: str) -> SyntheticLedgerToken:
        return SyntheticLedgerToken(self.ledger, self.symbol, holder, self.owner)

    def mint(self, dest: str, amount: int) -> bool:
        """
        Issue new synthetic tokens to dest.

        Raises:
            MustBeMoreThanZero: If amount is not positive
        """
        if self.caller != self.owner:
            logger.warning("mint refused: %s is not the owner of %s", self.caller, self.symbol)
            return False
        if amount <= 0:
            raise MustBeMoreThanZero(f"Mint amount must be positive, got {amount}")
        result = self.ledger.execute([Move(amount, self.symbol, SYSTEM_WALLET, dest, "mint")])
        return result == ExecuteResult.APPLIED

    def burn(self, amount: int) -> None:
        """
        Destroy tokens held by the caller.

        Raises:
            NotOwner: If the caller is not the owner
            MustBeMoreThanZero: If amount is not positive
            BurnAmountExceedsBalance: If the caller holds less than amount
        """
        if self.caller != self.owner:
            raise NotOwner(f"{self.caller} cannot burn {self.symbol}")
        if amount <= 0:
            raise MustBeMoreThanZero(f"Burn amount must be positive, got {amount}")
        balance = self.balance_of(self.caller)
        if balance < amount:
            raise BurnAmountExceedsBalance(f"{self.caller} holds {balance}, cannot burn {amount}")
        self.ledger.execute([Move(amount, self.symbol, self.caller, SYSTEM_WALLET, "burn")])
