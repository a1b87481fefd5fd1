"""
Position — Открытая перпетуальная позиция

Immutable Pydantic модель позиции, принадлежащей выделенному ключу позиции
(пространство ключей отдельно от нот). Хэш позиции авторитетен на стороне
сервиса расчётов и хранится как есть.
"""

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, Field

from shielded_wallet.errors import InvalidDirection


# =============================================================================
# ENUMS
# =============================================================================


class OrderSide(str, Enum):
    """Сторона перпетуальной позиции/ордера"""

    LONG = "Long"
    SHORT = "Short"

    @property
    def flag(self) -> int:
        """Флаг в хэше ордера: 1 для Long, 0 для Short."""
        return 1 if self is OrderSide.LONG else 0

    def opposite(self) -> "OrderSide":
        return OrderSide.SHORT if self is OrderSide.LONG else OrderSide.LONG

    @classmethod
    def parse(cls, value: Any) -> "OrderSide":
        """
        Разбор стороны на границе системы.

        Принимает OrderSide, "Long"/"Short" или bool (True = Long, формат сервиса).

        Raises:
            InvalidDirection: Нераспознанное значение
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.LONG if value else cls.SHORT
        try:
            return cls(value)
        except ValueError:
            raise InvalidDirection(f"Invalid order side: {value!r}") from None


# =============================================================================
# POSITION MODEL
# =============================================================================


class PositionHeader(BaseModel):
    """Заголовок позиции."""

    synthetic_token: int = Field(..., ge=0)
    position_address: int = Field(..., ge=0, description="X координата адреса позиции")
    allow_partial_liquidation: bool = Field(True)
    vlp_token: int = Field(0, ge=0)
    max_vlp_supply: int = Field(0, ge=0)

    model_config = {"frozen": True}


class Position(BaseModel):
    """
    Модель открытой позиции.

    Immutable модель (frozen=True). Одна позиция на адрес.
    """

    index: int = Field(..., ge=0, description="Индекс в state tree")
    position_header: PositionHeader
    order_side: OrderSide
    position_size: int = Field(..., ge=0)
    margin: int = Field(..., ge=0)
    entry_price: int = Field(0, ge=0)
    liquidation_price: int = Field(0, ge=0)
    bankruptcy_price: int = Field(0, ge=0)
    last_funding_idx: int = Field(0, ge=0)
    vlp_supply: int = Field(0, ge=0)
    hash: int = Field(..., ge=0, description="Хэш позиции (от сервиса)")

    model_config = {"frozen": True}

    @property
    def synthetic_token(self) -> int:
        return self.position_header.synthetic_token

    @property
    def position_address(self) -> int:
        return self.position_header.position_address

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Position":
        """
        Парсинг позиции из записи хранилища/сервиса.

        Raises:
            InvalidDirection: Некорректный order_side
        """
        header = data["position_header"]
        return cls(
            index=int(data["index"]),
            position_header=PositionHeader(
                synthetic_token=int(header["synthetic_token"]),
                position_address=int(header["position_address"]),
                allow_partial_liquidation=bool(header.get("allow_partial_liquidation", True)),
                vlp_token=int(header.get("vlp_token", 0)),
                max_vlp_supply=int(header.get("max_vlp_supply", 0)),
            ),
            order_side=OrderSide.parse(data["order_side"]),
            position_size=int(data["position_size"]),
            margin=int(data["margin"]),
            entry_price=int(data.get("entry_price", 0)),
            liquidation_price=int(data.get("liquidation_price", 0)),
            bankruptcy_price=int(data.get("bankruptcy_price", 0)),
            last_funding_idx=int(data.get("last_funding_idx", 0)),
            vlp_supply=int(data.get("vlp_supply", 0)),
            hash=int(data["hash"]),
        )

    def to_wire(self) -> dict[str, Any]:
        header = self.position_header
        return {
            "index": str(self.index),
            "position_header": {
                "synthetic_token": header.synthetic_token,
                "position_address": str(header.position_address),
                "allow_partial_liquidation": header.allow_partial_liquidation,
                "vlp_token": header.vlp_token,
                "max_vlp_supply": str(header.max_vlp_supply),
            },
            "order_side": self.order_side is OrderSide.LONG,
            "position_size": str(self.position_size),
            "margin": str(self.margin),
            "entry_price": str(self.entry_price),
            "liquidation_price": str(self.liquidation_price),
            "bankruptcy_price": str(self.bankruptcy_price),
            "last_funding_idx": str(self.last_funding_idx),
            "vlp_supply": str(self.vlp_supply),
            "hash": str(self.hash),
        }
