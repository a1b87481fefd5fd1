"""
Orders — Сообщения транзакций для сервиса расчётов

Immutable Pydantic модели всех типов транзакций. Каждое сообщение умеет:
- compute_hash(hasher): канонический хэш упорядоченного кортежа полей
  (порядок полей — часть wire-контракта)
- with_signature(sig): копия с подписью
- to_wire(): plain dict для сериализации (широкие числа — десятичные строки,
  signature — {r, s})

Флаг стороны в хэше: 1 для Long/Buy, 0 иначе. Отсутствующий хэш кодируется 0.
"""

from enum import Enum
from typing import Any, Sequence

from pydantic import BaseModel, Field, model_validator

from shielded_wallet.core.crypto.field import MAX_AMOUNT, negate_mod_field
from shielded_wallet.core.crypto.primitives import EcPoint, HashPrimitive, Signature
from shielded_wallet.core.domain.note import Note
from shielded_wallet.core.domain.order_tab import OrderTab
from shielded_wallet.core.domain.position import OrderSide, Position
from shielded_wallet.errors import InvalidDirection


# =============================================================================
# ENUMS
# =============================================================================


class SpotOrderSide(str, Enum):
    """Сторона спот-ордера"""

    BUY = "Buy"
    SELL = "Sell"

    @property
    def flag(self) -> int:
        return 1 if self is SpotOrderSide.BUY else 0

    @classmethod
    def parse(cls, value: Any) -> "SpotOrderSide":
        """
        Raises:
            InvalidDirection: Нераспознанное значение
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.BUY if value else cls.SELL
        try:
            return cls(value)
        except ValueError:
            raise InvalidDirection(f"Invalid spot order side: {value!r}") from None


class PositionEffectType(str, Enum):
    """Эффект перп-ордера на позицию"""

    OPEN = "Open"
    MODIFY = "Modify"
    CLOSE = "Close"

    @property
    def code(self) -> int:
        """Числовой код в хэше и в ответах сервиса."""
        return _EFFECT_CODES[self]

    @classmethod
    def parse(cls, value: Any) -> "PositionEffectType":
        """
        Принимает enum, имя ("Open"/"Modify"/"Close") или код (0/1/2).

        Raises:
            InvalidDirection: Нераспознанное значение
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            for effect, code in _EFFECT_CODES.items():
                if code == value:
                    return effect
            raise InvalidDirection(f"Invalid position effect code: {value}")
        try:
            return cls(value)
        except ValueError:
            raise InvalidDirection(f"Invalid position effect type: {value!r}") from None


_EFFECT_CODES: dict[PositionEffectType, int] = {
    PositionEffectType.OPEN: 0,
    PositionEffectType.MODIFY: 1,
    PositionEffectType.CLOSE: 2,
}


class MarginDirection(str, Enum):
    """Направление изменения маржи"""

    ADD = "Add"
    REMOVE = "Remove"

    @classmethod
    def parse(cls, value: Any) -> "MarginDirection":
        """
        Raises:
            InvalidDirection: Нераспознанное значение
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidDirection(f"Invalid margin direction: {value!r}") from None


# =============================================================================
# HELPERS
# =============================================================================


def _note_hashes(notes: Sequence[Note]) -> list[int]:
    return [note.hash for note in notes]


def _hash_or_zero(item: Note | None) -> int:
    return item.hash if item is not None else 0


def _notes_wire(notes: Sequence[Note]) -> list[dict[str, Any]]:
    return [note.to_wire() for note in notes]


def _optional_wire(item: Any) -> Any:
    return item.to_wire() if item is not None else None


class SignedMessage(BaseModel):
    """Базовый класс подписываемого сообщения."""

    signature: Signature | None = Field(None, description="Подпись (r, s)")

    model_config = {"frozen": True}

    def compute_hash(self, hasher: HashPrimitive) -> int:
        raise NotImplementedError

    def with_signature(self, signature: Signature):
        return self.model_copy(update={"signature": signature})

    def _signature_wire(self) -> dict[str, str] | None:
        return self.signature.to_wire() if self.signature is not None else None


# =============================================================================
# ORDER FIELDS
# =============================================================================


class CloseOrderFields(BaseModel):
    """Адрес и blinding, куда сервис вернёт коллатерал при закрытии."""

    dest_received_address: EcPoint
    dest_received_blinding: int = Field(..., ge=0)

    model_config = {"frozen": True}

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many([self.dest_received_address.x, self.dest_received_blinding])

    def to_wire(self) -> dict[str, Any]:
        return {
            "dest_received_address": self.dest_received_address.to_wire(),
            "dest_received_blinding": str(self.dest_received_blinding),
        }


class OpenOrderFields(BaseModel):
    """Поля открытия позиции: коллатеральные ноты, сдача, адрес новой позиции."""

    initial_margin: int = Field(..., gt=0, le=MAX_AMOUNT)
    collateral_token: int = Field(..., ge=0)
    notes_in: tuple[Note, ...] = Field(..., min_length=1)
    refund_note: Note | None = None
    position_address: int = Field(..., ge=0)
    allow_partial_liquidation: bool = True

    model_config = {"frozen": True}

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many(
            [
                *_note_hashes(self.notes_in),
                _hash_or_zero(self.refund_note),
                self.initial_margin,
                self.collateral_token,
                self.position_address,
                int(self.allow_partial_liquidation),
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "initial_margin": str(self.initial_margin),
            "collateral_token": self.collateral_token,
            "notes_in": _notes_wire(self.notes_in),
            "refund_note": _optional_wire(self.refund_note),
            "position_address": str(self.position_address),
            "allow_partial_liquidation": self.allow_partial_liquidation,
        }


class SpotNotesInfo(BaseModel):
    """Нотная часть спот-ордера."""

    dest_received_address: EcPoint
    dest_received_blinding: int = Field(..., ge=0)
    notes_in: tuple[Note, ...] = Field(..., min_length=1)
    refund_note: Note | None = None

    model_config = {"frozen": True}

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many(
            [
                *_note_hashes(self.notes_in),
                _hash_or_zero(self.refund_note),
                self.dest_received_address.x,
                self.dest_received_blinding,
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "dest_received_address": self.dest_received_address.to_wire(),
            "dest_received_blinding": str(self.dest_received_blinding),
            "notes_in": _notes_wire(self.notes_in),
            "refund_note": _optional_wire(self.refund_note),
        }


# =============================================================================
# SPOT / PERP ORDERS
# =============================================================================


class LimitOrder(SignedMessage):
    """
    Спот лимит-ордер.

    Финансируется либо нотами (spot_notes_info), либо ликвидностью order tab.
    """

    expiration: int = Field(..., ge=0, description="Время истечения (секунды)")
    token_spent: int = Field(..., ge=0)
    token_received: int = Field(..., ge=0)
    amount_spent: int = Field(..., gt=0, le=MAX_AMOUNT)
    amount_received: int = Field(..., gt=0, le=MAX_AMOUNT)
    fee_limit: int = Field(..., ge=0)
    spot_notes_info: SpotNotesInfo | None = None
    order_tab: OrderTab | None = None

    @model_validator(mode="after")
    def validate_funding_source(self) -> "LimitOrder":
        if (self.spot_notes_info is None) == (self.order_tab is None):
            raise ValueError("exactly one of spot_notes_info and order_tab must be set")
        return self

    def compute_hash(self, hasher: HashPrimitive) -> int:
        spot_hash = self.spot_notes_info.compute_hash(hasher) if self.spot_notes_info else 0
        tab_hash = self.order_tab.hash if self.order_tab else 0
        return hasher.hash_many(
            [
                self.expiration,
                self.token_spent,
                self.token_received,
                self.amount_spent,
                self.amount_received,
                self.fee_limit,
                spot_hash,
                tab_hash,
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "expiration_timestamp": self.expiration,
            "token_spent": self.token_spent,
            "token_received": self.token_received,
            "amount_spent": str(self.amount_spent),
            "amount_received": str(self.amount_received),
            "fee_limit": str(self.fee_limit),
            "spot_note_info": _optional_wire(self.spot_notes_info),
            "order_tab": _optional_wire(self.order_tab),
            "signature": self._signature_wire(),
        }


class PerpOrder(SignedMessage):
    """
    Перпетуальный ордер.

    Open — open_order_fields и нет позиции; Close — close_order_fields и позиция;
    Modify — только позиция.
    """

    expiration: int = Field(..., ge=0)
    position: Position | None = None
    position_effect_type: PositionEffectType
    order_side: OrderSide
    synthetic_token: int = Field(..., ge=0)
    synthetic_amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    collateral_amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    fee_limit: int = Field(..., ge=0)
    open_order_fields: OpenOrderFields | None = None
    close_order_fields: CloseOrderFields | None = None

    @model_validator(mode="after")
    def validate_effect_fields(self) -> "PerpOrder":
        effect = self.position_effect_type
        if effect is PositionEffectType.OPEN:
            if self.open_order_fields is None or self.position is not None:
                raise ValueError("Open order requires open_order_fields and no position")
        elif self.position is None:
            raise ValueError(f"{effect.value} order requires an existing position")
        if effect is PositionEffectType.CLOSE and self.close_order_fields is None:
            raise ValueError("Close order requires close_order_fields")
        return self

    def compute_hash(self, hasher: HashPrimitive) -> int:
        if self.open_order_fields is not None:
            fields_hash = self.open_order_fields.compute_hash(hasher)
        elif self.close_order_fields is not None:
            fields_hash = self.close_order_fields.compute_hash(hasher)
        else:
            fields_hash = 0
        position_address = self.position.position_address if self.position else 0
        return hasher.hash_many(
            [
                self.expiration,
                position_address,
                self.position_effect_type.code,
                self.order_side.flag,
                self.synthetic_token,
                self.synthetic_amount,
                self.collateral_amount,
                self.fee_limit,
                fields_hash,
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "expiration_timestamp": self.expiration,
            "position": _optional_wire(self.position),
            "position_effect_type": self.position_effect_type.code,
            "order_side": self.order_side is OrderSide.LONG,
            "synthetic_token": self.synthetic_token,
            "synthetic_amount": str(self.synthetic_amount),
            "collateral_amount": str(self.collateral_amount),
            "fee_limit": str(self.fee_limit),
            "open_order_fields": _optional_wire(self.open_order_fields),
            "close_order_fields": _optional_wire(self.close_order_fields),
            "signature": self._signature_wire(),
        }


class LiquidationOrder(SignedMessage):
    """Ордер на ликвидацию чужой позиции с открытием своей."""

    position: Position
    order_side: OrderSide
    synthetic_token: int = Field(..., ge=0)
    synthetic_amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    collateral_amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    open_order_fields: OpenOrderFields

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many(
            [
                self.position.position_address,
                self.order_side.flag,
                self.synthetic_token,
                self.synthetic_amount,
                self.collateral_amount,
                self.open_order_fields.compute_hash(hasher),
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "position": self.position.to_wire(),
            "order_side": self.order_side is OrderSide.LONG,
            "synthetic_token": self.synthetic_token,
            "synthetic_amount": str(self.synthetic_amount),
            "collateral_amount": str(self.collateral_amount),
            "open_order_fields": self.open_order_fields.to_wire(),
            "signature": self._signature_wire(),
        }


# =============================================================================
# ON-CHAIN INTERACTIONS
# =============================================================================


class Deposit(SignedMessage):
    """Депозит: одна новая нота, подписанная детерминированным ключом депозита."""

    deposit_id: int = Field(..., ge=0, description="chain_id * 2^32 + порядковый номер")
    token: int = Field(..., ge=0)
    amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    stark_key: int = Field(..., ge=0)
    notes: tuple[Note, ...] = Field(..., min_length=1)

    @property
    def chain_id(self) -> int:
        return self.deposit_id >> 32

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many([self.deposit_id, *_note_hashes(self.notes)])

    def to_wire(self) -> dict[str, Any]:
        return {
            "deposit_id": str(self.deposit_id),
            "deposit_token": self.token,
            "deposit_amount": str(self.amount),
            "stark_key": str(self.stark_key),
            "notes": _notes_wire(self.notes),
            "signature": self._signature_wire(),
        }


class Withdrawal(SignedMessage):
    """Вывод средств: ноты на вход и всегда одна нота сдачи (возможно нулевая)."""

    chain_id: int = Field(..., ge=0)
    token: int = Field(..., ge=0)
    amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    recipient: int = Field(..., ge=0, description="Stark key получателя")
    max_gas_fee: int = Field(0, ge=0)
    notes_in: tuple[Note, ...] = Field(..., min_length=1)
    refund_note: Note

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many(
            [
                *_note_hashes(self.notes_in),
                self.refund_note.hash,
                self.recipient,
                self.chain_id,
                self.max_gas_fee,
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "withdrawal_chain_id": self.chain_id,
            "withdrawal_token": self.token,
            "withdrawal_amount": str(self.amount),
            "recipient": str(self.recipient),
            "max_gas_fee": str(self.max_gas_fee),
            "notes_in": _notes_wire(self.notes_in),
            "refund_note": self.refund_note.to_wire(),
            "signature": self._signature_wire(),
        }


# =============================================================================
# NOTE / POSITION HELPERS
# =============================================================================


class MarginChange(SignedMessage):
    """
    Изменение маржи позиции.

    Add: ноты на вход, хэш H*(note_hashes..., refund_hash, position_hash), подпись суммой ключей нот.
    Remove: хэш H*(P - amount, close_fields_hash, position_hash), подпись ключом позиции.
    """

    direction: MarginDirection
    margin_change: int = Field(..., gt=0, le=MAX_AMOUNT)
    position: Position
    notes_in: tuple[Note, ...] = ()
    refund_note: Note | None = None
    close_order_fields: CloseOrderFields | None = None

    @model_validator(mode="after")
    def validate_direction_fields(self) -> "MarginChange":
        if self.direction is MarginDirection.ADD and not self.notes_in:
            raise ValueError("Add margin change requires notes_in")
        if self.direction is MarginDirection.REMOVE and self.close_order_fields is None:
            raise ValueError("Remove margin change requires close_order_fields")
        return self

    def compute_hash(self, hasher: HashPrimitive) -> int:
        if self.direction is MarginDirection.ADD:
            return hasher.hash_many(
                [
                    *_note_hashes(self.notes_in),
                    _hash_or_zero(self.refund_note),
                    self.position.hash,
                ]
            )
        return hasher.hash_many(
            [
                negate_mod_field(self.margin_change),
                self.close_order_fields.compute_hash(hasher),
                self.position.hash,
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        # Remove передаётся как отрицательная сумма
        signed_change = (
            self.margin_change if self.direction is MarginDirection.ADD else -self.margin_change
        )
        return {
            "margin_change": str(signed_change),
            "notes_in": _notes_wire(self.notes_in) if self.notes_in else None,
            "refund_note": _optional_wire(self.refund_note),
            "close_order_fields": _optional_wire(self.close_order_fields),
            "position": self.position.to_wire(),
            "signature": self._signature_wire(),
        }


class SplitNotes(SignedMessage):
    """Реструктуризация нот: много мелких нот → новая нота нужной суммы + сдача."""

    notes_in: tuple[Note, ...] = Field(..., min_length=1)
    new_note: Note
    refund_note: Note | None = None

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many(
            [*_note_hashes(self.notes_in), self.new_note.hash, _hash_or_zero(self.refund_note)]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "notes_in": _notes_wire(self.notes_in),
            "notes_out": _notes_wire(
                [self.new_note] + ([self.refund_note] if self.refund_note else [])
            ),
            "signature": self._signature_wire(),
        }


# =============================================================================
# ORDER TABS
# =============================================================================


def _close_hash(hasher: HashPrimitive, fields: CloseOrderFields | None) -> int:
    return fields.compute_hash(hasher) if fields is not None else 0


class OrderTabOpen(SignedMessage):
    """Открытие order tab: ноты base и quote на вход, новый tab."""

    market_id: int = Field(..., ge=0)
    order_tab: OrderTab
    base_notes_in: tuple[Note, ...] = Field(..., min_length=1)
    base_refund_note: Note | None = None
    quote_notes_in: tuple[Note, ...] = Field(..., min_length=1)
    quote_refund_note: Note | None = None
    add_only: bool = False

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many(
            [
                0,
                self.order_tab.hash,
                _hash_or_zero(self.base_refund_note),
                _hash_or_zero(self.quote_refund_note),
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "base_notes_in": _notes_wire(self.base_notes_in),
            "base_refund_note": _optional_wire(self.base_refund_note),
            "quote_notes_in": _notes_wire(self.quote_notes_in),
            "quote_refund_note": _optional_wire(self.quote_refund_note),
            "order_tab": self.order_tab.to_wire(),
            "add_only": self.add_only,
            "signature": self._signature_wire(),
            "market_id": self.market_id,
        }


class OrderTabClose(SignedMessage):
    """Закрытие order tab: обе стороны возвращаются на свежие адреса нот."""

    market_id: int = Field(..., ge=0)
    order_tab: OrderTab
    base_close_order_fields: CloseOrderFields
    quote_close_order_fields: CloseOrderFields

    def compute_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many(
            [
                self.order_tab.hash,
                self.order_tab.base_amount,
                self.order_tab.quote_amount,
                self.base_close_order_fields.compute_hash(hasher),
                self.quote_close_order_fields.compute_hash(hasher),
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "order_tab": self.order_tab.to_wire(),
            "base_amount_change": str(self.order_tab.base_amount),
            "quote_amount_change": str(self.order_tab.quote_amount),
            "base_close_order_fields": self.base_close_order_fields.to_wire(),
            "quote_close_order_fields": self.quote_close_order_fields.to_wire(),
            "signature": self._signature_wire(),
            "market_id": self.market_id,
        }


class OrderTabModify(SignedMessage):
    """
    Изменение ликвидности order tab.

    is_add=True: ноты на вход и сдача, подпись суммой ключей нот base+quote.
    is_add=False: close fields для выводимых сумм, подпись ключом tab.
    """

    market_id: int = Field(..., ge=0)
    order_tab: OrderTab
    is_add: bool
    base_amount: int = Field(..., ge=0, le=MAX_AMOUNT)
    quote_amount: int = Field(..., ge=0, le=MAX_AMOUNT)
    base_notes_in: tuple[Note, ...] = ()
    quote_notes_in: tuple[Note, ...] = ()
    base_refund_note: Note | None = None
    quote_refund_note: Note | None = None
    base_close_order_fields: CloseOrderFields | None = None
    quote_close_order_fields: CloseOrderFields | None = None

    @model_validator(mode="after")
    def validate_branch_fields(self) -> "OrderTabModify":
        if self.is_add:
            if not self.base_notes_in and not self.quote_notes_in:
                raise ValueError("adding liquidity requires input notes")
        elif self.base_close_order_fields is None or self.quote_close_order_fields is None:
            raise ValueError("removing liquidity requires close order fields for both sides")
        return self

    def compute_hash(self, hasher: HashPrimitive) -> int:
        if self.is_add:
            return hasher.hash_many(
                [
                    1,
                    self.order_tab.hash,
                    self.base_amount,
                    self.quote_amount,
                    _hash_or_zero(self.base_refund_note),
                    _hash_or_zero(self.quote_refund_note),
                ]
            )
        return hasher.hash_many(
            [
                0,
                self.order_tab.hash,
                self.base_amount,
                self.quote_amount,
                _close_hash(hasher, self.base_close_order_fields),
                _close_hash(hasher, self.quote_close_order_fields),
            ]
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "order_tab": self.order_tab.to_wire(),
            "is_add": self.is_add,
            "base_amount_change": str(self.base_amount),
            "quote_amount_change": str(self.quote_amount),
            "base_notes_in": _notes_wire(self.base_notes_in),
            "quote_notes_in": _notes_wire(self.quote_notes_in),
            "base_refund_note": _optional_wire(self.base_refund_note),
            "quote_refund_note": _optional_wire(self.quote_refund_note),
            "base_close_order_fields": _optional_wire(self.base_close_order_fields),
            "quote_close_order_fields": _optional_wire(self.quote_close_order_fields),
            "signature": self._signature_wire(),
            "market_id": self.market_id,
        }
