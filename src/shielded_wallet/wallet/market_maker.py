"""MarketMakerActions — подпись действий маркет-мейкера над его позицией.

Действие приходит как mapping с полем action_type; тип обязан совпадать с
вызываемой операцией. Позиция ищется по position_address (register_mm — в
synthetic_asset, остальные — во всех токенах). Подпись — ключом позиции.
"""

import logging
from typing import Any, Mapping

from pydantic import ValidationError

from shielded_wallet.core.domain.mm_actions import (
    AddLiquidity,
    CloseMM,
    MMActionType,
    RegisterMM,
    RemoveLiquidity,
)
from shielded_wallet.core.domain.position import Position
from shielded_wallet.errors import InvalidInput
from shielded_wallet.wallet.session import WalletSession

logger = logging.getLogger(__name__)


def _field(action: Mapping[str, Any], name: str) -> int:
    try:
        return int(action[name])
    except KeyError:
        raise InvalidInput(f"MM action is missing '{name}'") from None
    except (TypeError, ValueError):
        raise InvalidInput(f"MM action field '{name}' must be an integer") from None


class MarketMakerActions:
    """Конструктор подписанных MM-действий для одной сессии."""

    def __init__(self, session: WalletSession):
        self.session = session

    def _check_type(self, action: Mapping[str, Any], expected: MMActionType) -> None:
        if action.get("action_type") != expected.value:
            raise InvalidInput(
                f"Invalid action type {action.get('action_type')!r}, expected {expected.value!r}"
            )

    def _sign(self, message_cls, position: Position, **fields: Any):
        private_key = self.session.position_private_key(position)
        try:
            message = message_cls(position=position, **fields)
        except ValidationError as e:
            raise InvalidInput(f"Invalid {message_cls.__name__}: {e}") from e
        suite = self.session.suite
        signature = suite.sign_with_keys([private_key], message.compute_hash(suite.hasher))
        logger.info(f"Signed {message_cls.__name__} for position {position.position_address}")
        return message.with_signature(signature)

    def register_mm(self, action: Mapping[str, Any]) -> RegisterMM:
        """
        Регистрация позиции как vLP-пула.

        Raises:
            InvalidInput: Неверный action_type или поля
            InvalidPositionOrTab: Позиция не найдена
        """
        self._check_type(action, MMActionType.REGISTER_MM)
        position = self.session.ledger.find_position(
            _field(action, "synthetic_asset"), _field(action, "position_address")
        )
        return self._sign(
            RegisterMM,
            position,
            vlp_token=_field(action, "vlp_token"),
            max_vlp_supply=_field(action, "max_vlp_supply"),
        )

    def add_liquidity(self, action: Mapping[str, Any]) -> AddLiquidity:
        self._check_type(action, MMActionType.ADD_LIQUIDITY)
        position = self.session.ledger.find_position_any(_field(action, "position_address"))
        return self._sign(
            AddLiquidity,
            position,
            depositor=_field(action, "depositor"),
            initial_value=_field(action, "usdc_amount"),
        )

    def remove_liquidity(self, action: Mapping[str, Any]) -> RemoveLiquidity:
        self._check_type(action, MMActionType.REMOVE_LIQUIDITY)
        position = self.session.ledger.find_position_any(_field(action, "position_address"))
        return self._sign(
            RemoveLiquidity,
            position,
            depositor=_field(action, "depositor"),
            initial_value=_field(action, "initial_value"),
            vlp_amount=_field(action, "vlp_amount"),
        )

    def close_mm(self, action: Mapping[str, Any]) -> CloseMM:
        self._check_type(action, MMActionType.CLOSE_MM)
        position = self.session.ledger.find_position_any(_field(action, "position_address"))
        return self._sign(
            CloseMM,
            position,
            initial_value_sum=_field(action, "initial_value_sum"),
            vlp_amount_sum=_field(action, "vlp_amount_sum"),
        )
