"""
Active Orders — Авторитетное состояние ордеров от сервиса расчётов

Снимок ответа "fetch active orders by id list": плохие id, активные спот/перп
ордера и partial-fill-refund (pfr) ноты. Потребляется StateReconciler.
"""

from typing import Any, Mapping

from pydantic import BaseModel, Field

from shielded_wallet.core.crypto.primitives import HashPrimitive
from shielded_wallet.core.domain.note import Note
from shielded_wallet.core.domain.orders import PositionEffectType


def _notes(raw: Any, hasher: HashPrimitive) -> tuple[Note, ...]:
    return tuple(Note.from_wire(item, hasher) for item in (raw or ()))


def _optional_note(raw: Any, hasher: HashPrimitive) -> Note | None:
    return Note.from_wire(raw, hasher) if raw else None


class ActiveSpotOrder(BaseModel):
    """Активный спот-ордер."""

    order_id: int = Field(..., ge=0)
    notes_in: tuple[Note, ...] = ()
    refund_note: Note | None = None
    qty_left: int = Field(0, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def from_wire(cls, data: Mapping[str, Any], hasher: HashPrimitive) -> "ActiveSpotOrder":
        return cls(
            order_id=int(data["order_id"]),
            notes_in=_notes(data.get("notes_in"), hasher),
            refund_note=_optional_note(data.get("refund_note"), hasher),
            qty_left=int(data.get("qty_left", 0)),
        )


class ActivePerpOrder(BaseModel):
    """Активный перп-ордер."""

    order_id: int = Field(..., ge=0)
    position_effect_type: PositionEffectType
    notes_in: tuple[Note, ...] = ()
    refund_note: Note | None = None
    qty_left: int = Field(0, ge=0)

    model_config = {"frozen": True}

    @property
    def locks_notes(self) -> bool:
        """Только Open-ордера держат коллатеральные ноты."""
        return self.position_effect_type is PositionEffectType.OPEN

    @classmethod
    def from_wire(cls, data: Mapping[str, Any], hasher: HashPrimitive) -> "ActivePerpOrder":
        """
        Raises:
            InvalidDirection: Нераспознанный position_effect_type
        """
        return cls(
            order_id=int(data["order_id"]),
            position_effect_type=PositionEffectType.parse(data["position_effect_type"]),
            notes_in=_notes(data.get("notes_in"), hasher),
            refund_note=_optional_note(data.get("refund_note"), hasher),
            qty_left=int(data.get("qty_left", 0)),
        )


class ActiveOrdersSnapshot(BaseModel):
    """Ответ сервиса на запрос активных ордеров."""

    bad_order_ids: tuple[int, ...] = ()
    orders: tuple[ActiveSpotOrder, ...] = ()
    bad_perp_order_ids: tuple[int, ...] = ()
    perp_orders: tuple[ActivePerpOrder, ...] = ()
    pfr_notes: tuple[Note, ...] = ()

    model_config = {"frozen": True}

    @classmethod
    def from_wire(cls, data: Mapping[str, Any], hasher: HashPrimitive) -> "ActiveOrdersSnapshot":
        return cls(
            bad_order_ids=tuple(int(i) for i in data.get("bad_order_ids") or ()),
            orders=tuple(ActiveSpotOrder.from_wire(o, hasher) for o in data.get("orders") or ()),
            bad_perp_order_ids=tuple(int(i) for i in data.get("bad_perp_order_ids") or ()),
            perp_orders=tuple(
                ActivePerpOrder.from_wire(o, hasher) for o in data.get("perp_orders") or ()
            ),
            pfr_notes=_notes(data.get("pfr_notes"), hasher),
        )
