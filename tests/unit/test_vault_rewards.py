"""
test_vault_rewards.py - Unit tests for vault pools and reward arithmetic

Tests:
- Vault wallet naming and balances
- Reserved vault wallet names
- credit / debit move building and balance checks
- Yield amounts per strategy
- Yield skim moves for both yield sources
- Pro-rata reward shares
"""

import pytest

from roomvault import (
    Move, SYSTEM_WALLET, InsufficientBalance, Unauthorized,
    Strategy, STRATEGY_RATE_BPS, YIELD_FROM_PRINCIPAL, YIELD_FROM_ISSUER,
    PRINCIPAL, REWARD, compute_yield_amount, compute_reward_share,
)
from roomvault.units import (
    create_vault, credit, debit, compute_yield_skim,
    is_vault_wallet, require_participant_wallet,
)
from tests.fake_view import FakeView


VAULT = create_vault("ROOM_1", "COIN")


def _view(principal=0, reward=0):
    return FakeView(balances={
        VAULT.principal_wallet: {"COIN": principal},
        VAULT.reward_wallet: {"COIN": reward},
    })


class TestVault:

    def test_wallet_names(self):
        assert VAULT.principal_wallet == "ROOM_1:principal"
        assert VAULT.reward_wallet == "ROOM_1:reward"
        assert VAULT.wallet(PRINCIPAL) == VAULT.principal_wallet
        assert VAULT.wallet(REWARD) == VAULT.reward_wallet

    def test_unknown_pool(self):
        with pytest.raises(ValueError, match="Unknown vault pool"):
            VAULT.wallet("fees")

    def test_balances(self):
        assert VAULT.balances(_view(300, 45)) == {PRINCIPAL: 300, REWARD: 45}

    @pytest.mark.parametrize("wallet_id, reserved", [
        ("ROOM_1:principal", True),
        ("ROOM_1:reward", True),
        ("a:b:reward", True),
        (":reward", False),
        ("reward", False),
        ("ROOM_1:fees", False),
        ("alice", False),
    ])
    def test_is_vault_wallet(self, wallet_id, reserved):
        assert is_vault_wallet(wallet_id) is reserved

    def test_participant_wallet_guard(self):
        require_participant_wallet("alice")
        for wallet_id in (SYSTEM_WALLET, VAULT.principal_wallet, VAULT.reward_wallet):
            with pytest.raises(Unauthorized):
                require_participant_wallet(wallet_id)


class TestCreditDebit:

    def test_credit_builds_move(self):
        moves = credit(VAULT, REWARD, "treasury", 500, "fund")
        assert moves == [Move(500, "COIN", "treasury", "ROOM_1:reward", "fund")]

    def test_credit_zero_is_noop(self):
        assert credit(VAULT, PRINCIPAL, "alice", 0, "c") == []

    def test_credit_negative_rejected(self):
        with pytest.raises(ValueError):
            credit(VAULT, PRINCIPAL, "alice", -1, "c")

    def test_debit_within_balance(self):
        moves = debit(_view(principal=300), VAULT, PRINCIPAL, "alice", 300, "claim")
        assert moves == [Move(300, "COIN", "ROOM_1:principal", "alice", "claim")]

    def test_debit_over_balance_raises(self):
        with pytest.raises(InsufficientBalance, match="principal pool"):
            debit(_view(principal=299), VAULT, PRINCIPAL, "alice", 300, "claim")

    def test_debit_zero_is_noop(self):
        assert debit(_view(), VAULT, REWARD, "alice", 0, "claim") == []


class TestYield:

    def test_rate_table(self):
        assert STRATEGY_RATE_BPS == {
            Strategy.NONE: 0,
            Strategy.CONSERVATIVE: 40,
            Strategy.BALANCED: 80,
            Strategy.AGGRESSIVE: 150,
        }

    @pytest.mark.parametrize("strategy, expected", [
        (Strategy.NONE, 0),
        (Strategy.CONSERVATIVE, 40),
        (Strategy.BALANCED, 80),
        (Strategy.AGGRESSIVE, 150),
    ])
    def test_yield_on_ten_thousand(self, strategy, expected):
        assert compute_yield_amount(10_000, strategy) == expected

    def test_yield_floors(self):
        assert compute_yield_amount(1985, Strategy.AGGRESSIVE) == 29
        assert compute_yield_amount(66, Strategy.AGGRESSIVE) == 0

    def test_skim_from_principal(self):
        moves = compute_yield_skim(_view(principal=10_000), VAULT, Strategy.AGGRESSIVE)
        assert moves == [Move(150, "COIN", "ROOM_1:principal", "ROOM_1:reward", "yield_skim_ROOM_1")]

    def test_skim_from_issuer(self):
        moves = compute_yield_skim(
            _view(principal=10_000), VAULT, Strategy.AGGRESSIVE, YIELD_FROM_ISSUER
        )
        assert moves == [Move(150, "COIN", SYSTEM_WALLET, "ROOM_1:reward", "yield_skim_ROOM_1")]

    def test_no_skim_without_strategy(self):
        assert compute_yield_skim(_view(principal=10_000), VAULT, Strategy.NONE) == []

    def test_no_skim_on_empty_principal(self):
        assert compute_yield_skim(_view(), VAULT, Strategy.AGGRESSIVE, YIELD_FROM_PRINCIPAL) == []

    def test_unknown_yield_source(self):
        with pytest.raises(ValueError, match="Unknown yield source"):
            compute_yield_skim(_view(principal=10_000), VAULT, Strategy.BALANCED, "treasury")


class TestRewardShare:

    def test_even_split(self):
        assert compute_reward_share(1, 10_000, 4) == 2_500
        assert compute_reward_share(3, 10_000, 4) == 7_500

    def test_floor(self):
        assert compute_reward_share(1, 100, 3) == 33
        assert compute_reward_share(2, 100, 3) == 66

    def test_sole_participant_takes_everything(self):
        assert compute_reward_share(3, 6_000, 3) == 6_000

    def test_zero_weight_rejected(self):
        with pytest.raises(ValueError, match="total_weight"):
            compute_reward_share(0, 100, 0)

    def test_count_above_weight_rejected(self):
        with pytest.raises(ValueError):
            compute_reward_share(5, 100, 4)
