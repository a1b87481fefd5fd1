"""
Тесты MarketMakerActions: подпись действий маркет-мейкера ключом позиции
"""

import pytest

from shielded_wallet.core.contracts.validators import validate_message
from shielded_wallet.errors import InvalidInput, InvalidPositionOrTab
from shielded_wallet.wallet.market_maker import MarketMakerActions

BTC = 12345
VLP_TOKEN = 13579


@pytest.fixture
def mm(session):
    return MarketMakerActions(session)


@pytest.fixture
def position(open_position):
    return open_position()


@pytest.fixture
def position_key(session, position):
    return session.ledger.position_keys[position.position_address]


class TestRegisterMM:
    def _action(self, position, **overrides):
        action = {
            "action_type": "register_mm",
            "synthetic_asset": BTC,
            "position_address": position.position_address,
            "vlp_token": VLP_TOKEN,
            "max_vlp_supply": 1_000_000,
        }
        action.update(overrides)
        return action

    def test_register(self, mm, position, position_key, verify_signature):
        message = mm.register_mm(self._action(position))
        assert message.vlp_token == VLP_TOKEN
        assert message.position == position
        assert verify_signature(message, [position_key])
        wire = validate_message(message)
        assert wire["max_vlp_supply"] == "1000000"

    def test_string_fields_accepted(self, mm, position):
        message = mm.register_mm(
            self._action(position, position_address=str(position.position_address))
        )
        assert message.position == position

    def test_wrong_action_type(self, mm, position):
        with pytest.raises(InvalidInput):
            mm.register_mm(self._action(position, action_type="close_mm"))

    def test_missing_field(self, mm, position):
        action = self._action(position)
        del action["vlp_token"]
        with pytest.raises(InvalidInput):
            mm.register_mm(action)

    def test_non_integer_field(self, mm, position):
        with pytest.raises(InvalidInput):
            mm.register_mm(self._action(position, max_vlp_supply="lots"))

    def test_zero_supply_rejected(self, mm, position):
        with pytest.raises(InvalidInput):
            mm.register_mm(self._action(position, max_vlp_supply=0))

    def test_position_searched_in_synthetic_asset(self, mm, position):
        with pytest.raises(InvalidPositionOrTab):
            mm.register_mm(self._action(position, synthetic_asset=54321))


class TestLiquidityActions:
    def test_add_liquidity(self, mm, position, position_key, verify_signature):
        message = mm.add_liquidity(
            {
                "action_type": "add_liquidity",
                "position_address": position.position_address,
                "depositor": 4242,
                "usdc_amount": 250_000,
            }
        )
        assert message.initial_value == 250_000
        assert verify_signature(message, [position_key])
        validate_message(message)

    def test_remove_liquidity(self, mm, position, position_key, verify_signature):
        message = mm.remove_liquidity(
            {
                "action_type": "remove_liquidity",
                "position_address": position.position_address,
                "depositor": 4242,
                "initial_value": 250_000,
                "vlp_amount": 1_000,
            }
        )
        assert message.vlp_amount == 1_000
        assert verify_signature(message, [position_key])
        validate_message(message)

    def test_close_mm(self, mm, position, position_key, verify_signature):
        message = mm.close_mm(
            {
                "action_type": "close_mm",
                "position_address": position.position_address,
                "initial_value_sum": 1_250_000,
                "vlp_amount_sum": 5_000,
            }
        )
        assert verify_signature(message, [position_key])
        assert validate_message(message)["vlp_amount_sum"] == "5000"

    def test_unknown_position(self, mm):
        with pytest.raises(InvalidPositionOrTab):
            mm.close_mm(
                {
                    "action_type": "close_mm",
                    "position_address": 1,
                    "initial_value_sum": 0,
                    "vlp_amount_sum": 0,
                }
            )

    def test_hash_depends_on_position(self, session, mm, open_position):
        """Одинаковые поля над разными позициями дают разные хэши."""
        first = open_position(index=1)
        second = open_position(index=2)
        hashes = {
            mm.close_mm(
                {
                    "action_type": "close_mm",
                    "position_address": p.position_address,
                    "initial_value_sum": 1,
                    "vlp_amount_sum": 1,
                }
            ).compute_hash(session.suite.hasher)
            for p in (first, second)
        }
        assert len(hashes) == 2
