"""
positions.py - Per-user collateral positions and debt accounts

The PositionLedger is the authoritative record of what each user has locked
in the engine and how much synthetic asset they have minted against it.

Key responsibilities:
    - Holds deposited quantity per (user, asset) and minted quantity per user
    - Refuses any decrement that would go below zero (never clamps)
    - Keeps an inverted index asset -> {user -> quantity} for totals
    - clone() produces an independent copy; the engine mutates a clone and
      swaps it in on commit, so a published ledger is never half-updated
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Set

from .core import CollateralBalances, InsufficientCollateral, InsufficientDebt


class PositionLedger:
    """
    Collateral positions and debt accounts for every user.

    Thread Safety:
        Not thread-safe on its own. The engine only mutates private clones
        and publishes them by reference swap.
    """

    def __init__(self):
        # user -> {asset -> deposited quantity}
        self.collateral: Dict[str, Dict[str, int]] = {}
        # user -> minted quantity
        self.minted: Dict[str, int] = {}
        # Inverted index asset -> {user -> quantity}, zero positions removed
        self._positions_by_asset: Dict[str, Dict[str, int]] = defaultdict(dict)

    # ========================================================================
    # READS
    # ========================================================================

    def get_collateral(self, user: str, asset: str) -> int:
        """Deposited quantity of an asset for a user (0 if none)."""
        return self.collateral.get(user, {}).get(asset, 0)

    def get_collateral_balances(self, user: str) -> CollateralBalances:
        """Copy of all non-zero positions for a user."""
        return {a: q for a, q in self.collateral.get(user, {}).items() if q}

    def get_minted(self, user: str) -> int:
        """Minted synthetic quantity for a user (0 if none)."""
        return self.minted.get(user, 0)

    def get_positions(self, asset: str) -> Dict[str, int]:
        """All non-zero positions in an asset, keyed by user."""
        return dict(self._positions_by_asset.get(asset, {}))

    def total_deposited(self, asset: str) -> int:
        """Sum of all deposits of an asset, users in sorted order."""
        positions = self._positions_by_asset.get(asset, {})
        return sum(positions[u] for u in sorted(positions))

    def total_minted(self) -> int:
        """Sum of all debt accounts, users in sorted order."""
        return sum(self.minted[u] for u in sorted(self.minted))

    def list_users(self) -> List[str]:
        """Users with any position or debt, sorted."""
        users: Set[str] = set(self.collateral) | set(self.minted)
        return sorted(users)

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def credit_collateral(self, user: str, asset: str, amount: int) -> int:
        """Increase a position and return the new quantity."""
        if amount < 0:
            raise ValueError(f"Credit amount cannot be negative, got {amount}")
        new_quantity = self.get_collateral(user, asset) + amount
        self._set_collateral(user, asset, new_quantity)
        return new_quantity

    def debit_collateral(self, user: str, asset: str, amount: int) -> int:
        """
        Decrease a position and return the new quantity.

        Raises:
            InsufficientCollateral: If the position holds less than amount
        """
        if amount < 0:
            raise ValueError(f"Debit amount cannot be negative, got {amount}")
        current = self.get_collateral(user, asset)
        if amount > current:
            raise InsufficientCollateral(user, asset, amount, current)
        self._set_collateral(user, asset, current - amount)
        return current - amount

    def add_debt(self, user: str, amount: int) -> int:
        """Increase a user's minted amount and return the new total."""
        if amount < 0:
            raise ValueError(f"Debt amount cannot be negative, got {amount}")
        self.minted[user] = self.get_minted(user) + amount
        return self.minted[user]

    def reduce_debt(self, user: str, amount: int) -> int:
        """
        Decrease a user's minted amount and return the new total.

        Raises:
            InsufficientDebt: If the user has minted less than amount
        """
        if amount < 0:
            raise ValueError(f"Repayment amount cannot be negative, got {amount}")
        current = self.get_minted(user)
        if amount > current:
            raise InsufficientDebt(user, amount, current)
        if current == amount:
            self.minted.pop(user, None)
        else:
            self.minted[user] = current - amount
        return current - amount

    def _set_collateral(self, user: str, asset: str, quantity: int) -> None:
        """Write a position and keep the inverted index in step."""
        user_positions = self.collateral.setdefault(user, {})
        if quantity:
            user_positions[asset] = quantity
            self._positions_by_asset[asset][user] = quantity
        else:
            user_positions.pop(asset, None)
            self._positions_by_asset[asset].pop(user, None)
            if not user_positions:
                del self.collateral[user]

    # ========================================================================
    # COPYING
    # ========================================================================

    def clone(self) -> PositionLedger:
        """
        Create an independent copy.

        Modifications to the clone never affect the original and vice versa.
        """
        cloned = PositionLedger.__new__(PositionLedger)
        cloned.collateral = {user: dict(p) for user, p in self.collateral.items()}
        cloned.minted = dict(self.minted)
        cloned._positions_by_asset = defaultdict(dict)
        for asset, positions in self._positions_by_asset.items():
            cloned._positions_by_asset[asset] = dict(positions)
        return cloned

    def __repr__(self):
        return f"PositionLedger({len(self.list_users())} users, minted={self.total_minted()})"
