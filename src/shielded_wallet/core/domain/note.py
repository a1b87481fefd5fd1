"""
Note — Неделимая единица стоимости токена

Immutable Pydantic модель ноты, принадлежащей stealth-адресу кошелька.

    commitment = H2(amount, blinding)
    hash       = H*(address.x, token, commitment)   (0 для нулевой суммы)

Нота создаётся OrderBuilder (депозит, сдача, выход свопа) или обнаруживается
при сканировании хранилища, и удаляется из Ledger в момент выбора CoinSelector.
"""

from typing import Any, Mapping

from pydantic import BaseModel, Field

from shielded_wallet.core.crypto.commitment import commit, reveal_with_blinding
from shielded_wallet.core.crypto.field import MAX_AMOUNT
from shielded_wallet.core.crypto.primitives import EcPoint, HashPrimitive


def hash_note_fields(hasher: HashPrimitive, address: EcPoint, token: int, amount: int, blinding: int) -> int:
    if amount == 0:
        return 0
    commitment = commit(hasher, amount, blinding)
    return hasher.hash_many([address.x, token, commitment])


def _parse_point(value: Any) -> EcPoint:
    if isinstance(value, EcPoint):
        return value
    if isinstance(value, Mapping):
        return EcPoint.from_wire(dict(value))
    # [x, y] (формат хранилища)
    x, y = value
    return EcPoint(x=int(x), y=int(y))


class Note(BaseModel):
    """
    Модель ноты.

    Immutable (frozen=True): любые изменения суммы — это новая нота.
    """

    address: EcPoint = Field(..., description="Stealth-адрес владельца")
    token: int = Field(..., ge=0, description="Идентификатор токена")
    amount: int = Field(..., ge=0, le=MAX_AMOUNT, description="Сумма (u64)")
    blinding: int = Field(..., ge=0, description="Blinding factor commitment")
    index: int | None = Field(None, ge=0, description="Индекс в state tree (назначает сервис)")
    hash: int = Field(..., ge=0, description="H*(address.x, token, commitment)")

    model_config = {"frozen": True}

    @classmethod
    def build(
        cls,
        hasher: HashPrimitive,
        address: EcPoint,
        token: int,
        amount: int,
        blinding: int,
        index: int | None = None,
    ) -> "Note":
        """Создание ноты с вычислением хэша."""
        return cls(
            address=address,
            token=token,
            amount=amount,
            blinding=blinding,
            index=index,
            hash=hash_note_fields(hasher, address, token, amount, blinding),
        )

    @classmethod
    def from_stored(
        cls,
        hasher: HashPrimitive,
        address: EcPoint,
        token: int,
        index: int,
        hidden_amount: int,
        commitment: int,
        blinding: int,
    ) -> "Note":
        """
        Восстановление ноты из записи хранилища.

        Raises:
            InvalidCommitment: Если раскрытая сумма не совпадает с commitment
        """
        amount = reveal_with_blinding(hasher, blinding, hidden_amount, commitment)
        return cls.build(hasher, address, token, amount, blinding, index)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any], hasher: HashPrimitive) -> "Note":
        """Парсинг ноты из сообщения сервиса (хэш всегда пересчитывается)."""
        index = data.get("index")
        return cls.build(
            hasher,
            address=_parse_point(data["address"]),
            token=int(data["token"]),
            amount=int(data["amount"]),
            blinding=int(data["blinding"]),
            index=int(index) if index is not None else None,
        )

    def commitment(self, hasher: HashPrimitive) -> int:
        return commit(hasher, self.amount, self.blinding)

    def with_index(self, index: int) -> "Note":
        return self.model_copy(update={"index": index})

    def to_wire(self) -> dict[str, Any]:
        return {
            "address": self.address.to_wire(),
            "token": self.token,
            "amount": str(self.amount),
            "blinding": str(self.blinding),
            "index": str(self.index) if self.index is not None else None,
            "hash": str(self.hash),
        }
