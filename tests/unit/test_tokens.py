"""
test_tokens.py - Unit tests for the reference token ledger

Tests:
- TokenLedger: issuance, atomic batches, conservation
- LedgerToken: transfer, transfer_from with allowances
- SyntheticLedgerToken: owner-only mint, burn failure modes
"""

import pytest

from stableledger import (
    TokenLedger, LedgerToken, Move, ExecuteResult, SYSTEM_WALLET, CollateralToken, SyntheticToken,
    TokenNotRegistered, MustBeMoreThanZero, BurnAmountExceedsBalance, NotOwner,
)


@pytest.fixture
def ledger():
    ledger = TokenLedger("test")
    ledger.register_token("WETH")
    ledger.issue("WETH", "alice", 100)
    return ledger


class TestMove:

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValueError):
            Move(-1, "WETH", "alice", "bob", "x")

    def test_same_source_and_dest_rejected(self):
        with pytest.raises(ValueError):
            Move(1, "WETH", "alice", "alice", "x")


class TestTokenLedger:

    def test_issue_comes_from_system(self, ledger):
        assert ledger.balance_of("alice", "WETH") == 100
        assert ledger.total_supply("WETH") == 100
        assert ledger.balance_of(SYSTEM_WALLET, "WETH") == -100

    def test_duplicate_registration(self, ledger):
        with pytest.raises(ValueError):
            ledger.register_token("WETH")

    def test_unregistered_symbol(self, ledger):
        with pytest.raises(TokenNotRegistered):
            ledger.balance_of("alice", "DOGE")

    def test_batch_is_atomic(self, ledger):
        result = ledger.execute([
            Move(60, "WETH", "alice", "bob", "a"),
            Move(60, "WETH", "alice", "carol", "b"),
        ])
        assert result == ExecuteResult.REJECTED
        assert ledger.balance_of("alice", "WETH") == 100
        assert ledger.balance_of("bob", "WETH") == 0

    def test_batch_checks_net_change(self, ledger):
        result = ledger.execute([
            Move(150, "WETH", "alice", "bob", "a"),
            Move(150, "WETH", "bob", "alice", "b"),
        ])
        assert result == ExecuteResult.APPLIED

    def test_conservation(self, ledger):
        ledger.execute([Move(40, "WETH", "alice", "bob", "a")])
        report = ledger.verify_conservation({"WETH": 100})
        assert report['valid']
        assert report['supplies'] == {"WETH": 100}

    def test_conservation_reports_supply_mismatch(self, ledger):
        report = ledger.verify_conservation({"WETH": 99})
        assert not report['valid']


class TestLedgerToken:

    @pytest.fixture
    def weth(self, ledger):
        return LedgerToken(ledger, "WETH", "alice")

    def test_satisfies_protocol(self, weth):
        assert isinstance(weth, CollateralToken)

    def test_transfer(self, weth):
        assert weth.transfer("bob", 30)
        assert weth.balance_of("bob") == 30

    def test_transfer_more_than_balance(self, weth):
        assert weth.transfer("bob", 101) is False
        assert weth.balance_of("alice") == 100

    def test_zero_transfer_is_a_no_op(self, weth, ledger):
        assert weth.transfer("bob", 0)
        assert weth.transfer_from("alice", "bob", 0)
        assert ledger.transaction_log[-1].moves[0].memo == "issue"

    def test_transfer_from_needs_allowance(self, weth):
        spender = weth.as_caller("engine")
        assert spender.transfer_from("alice", "engine", 10) is False
        weth.approve("engine", 25)
        assert spender.transfer_from("alice", "engine", 10)
        assert spender.allowance("alice", "engine") == 15
        assert spender.balance_of("engine") == 10

    def test_transfer_from_insufficient_balance_keeps_allowance(self, weth):
        spender = weth.as_caller("engine")
        weth.approve("engine", 1000)
        assert spender.transfer_from("alice", "engine", 101) is False
        assert spender.allowance("alice", "engine") == 1000

    def test_transfer_from_own_balance(self, weth):
        assert weth.transfer_from("alice", "bob", 5)


class TestSyntheticLedgerToken:

    @pytest.fixture
    def synthetic(self, ledger):
        return ledger.register_synthetic("SYN", owner="engine")

    def test_satisfies_protocol(self, synthetic):
        assert isinstance(synthetic, SyntheticToken)

    def test_owner_mints(self, synthetic):
        assert synthetic.mint("alice", 50)
        assert synthetic.total_supply() == 50

    def test_non_owner_mint_refused(self, synthetic):
        assert synthetic.as_caller("alice").mint("alice", 50) is False
        assert synthetic.total_supply() == 0

    def test_mint_zero(self, synthetic):
        with pytest.raises(MustBeMoreThanZero):
            synthetic.mint("alice", 0)

    def test_burn_own_balance(self, synthetic):
        synthetic.mint("engine", 50)
        synthetic.burn(20)
        assert synthetic.balance_of("engine") == 30
        assert synthetic.total_supply() == 30

    def test_burn_more_than_balance(self, synthetic):
        synthetic.mint("engine", 5)
        with pytest.raises(BurnAmountExceedsBalance):
            synthetic.burn(6)

    def test_burn_zero(self, synthetic):
        with pytest.raises(MustBeMoreThanZero):
            synthetic.burn(0)

    def test_non_owner_burn(self, synthetic):
        synthetic.mint("alice", 5)
        with pytest.raises(NotOwner):
            synthetic.as_caller("alice").burn(5)
