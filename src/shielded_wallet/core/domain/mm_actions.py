"""
MM Actions — Действия маркет-мейкера над позицией

Все действия подписываются ключом позиции маркет-мейкера:
    register_mm       H*(position.hash, vlp_token, max_vlp_supply)
    add_liquidity     H*(position.hash, depositor, initial_value)
    remove_liquidity  H*(position.hash, depositor, initial_value, vlp_amount)
    close_mm          H*(position.hash, initial_value_sum, vlp_amount_sum)
"""

from enum import Enum
from typing import Any

from pydantic import Field

from shielded_wallet.core.crypto.primitives import HashPrimitive
from shielded_wallet.core.domain.orders import SignedMessage
from shielded_wallet.core.domain.position import Position


class MMActionType(str, Enum):
    """Тип действия маркет-мейкера"""

    REGISTER_MM = "register_mm"
    ADD_LIQUIDITY = "add_liquidity"
    REMOVE_LIQUIDITY = "remove_liquidity"
    CLOSE_MM = "close_mm"


class _PositionAction(SignedMessage):
    position: Position

    def _base_wire(self) -> dict[str, Any]:
        return {
            "position": self.position.to_wire(),
            "synthetic_token": self.position.synthetic_token,
            "signature": self._signature_wire(),
        }


class RegisterMM(_PositionAction):
    vlp_token: int = Field(..., ge=0)
    max_vlp_supply: int = Field(..., gt=0)

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many([self.position.hash, self.vlp_token, self.max_vlp_supply])

    def to_wire(self) -> dict[str, Any]:
        return {
            **self._base_wire(),
            "vlp_token": self.vlp_token,
            "max_vlp_supply": str(self.max_vlp_supply),
        }


class AddLiquidity(_PositionAction):
    depositor: int = Field(..., ge=0)
    initial_value: int = Field(..., gt=0, description="Сумма коллатерала депозитора")

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many([self.position.hash, self.depositor, self.initial_value])

    def to_wire(self) -> dict[str, Any]:
        return {
            **self._base_wire(),
            "depositor": str(self.depositor),
            "initial_value": str(self.initial_value),
        }


class RemoveLiquidity(_PositionAction):
    depositor: int = Field(..., ge=0)
    initial_value: int = Field(..., ge=0)
    vlp_amount: int = Field(..., gt=0)

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many(
            [self.position.hash, self.depositor, self.initial_value, self.vlp_amount]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            **self._base_wire(),
            "depositor": str(self.depositor),
            "initial_value": str(self.initial_value),
            "vlp_amount": str(self.vlp_amount),
        }


class CloseMM(_PositionAction):
    initial_value_sum: int = Field(..., ge=0)
    vlp_amount_sum: int = Field(..., ge=0)

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many([self.position.hash, self.initial_value_sum, self.vlp_amount_sum])

    def to_wire(self) -> dict[str, Any]:
        return {
            **self._base_wire(),
            "initial_value_sum": str(self.initial_value_sum),
            "vlp_amount_sum": str(self.vlp_amount_sum),
        }
