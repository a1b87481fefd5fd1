"""
OrderTab — Постоянное двустороннее обязательство ликвидности

Order tab держит base и quote суммы рынка, скрытые отдельными blinding-ами,
и принадлежит tab-специфичному ключу.

    header_hash = H*(base_token, quote_token, pub_key)
    tab_hash    = H*(header_hash, H2(base_amount, base_blinding), H2(quote_amount, quote_blinding))
"""

from typing import Any, Mapping

from pydantic import BaseModel, Field

from shielded_wallet.core.crypto.commitment import commit, reveal_with_blinding
from shielded_wallet.core.crypto.field import MAX_AMOUNT
from shielded_wallet.core.crypto.primitives import HashPrimitive


class TabHeader(BaseModel):
    """Заголовок order tab."""

    base_token: int = Field(..., ge=0)
    quote_token: int = Field(..., ge=0)
    base_blinding: int = Field(..., ge=0)
    quote_blinding: int = Field(..., ge=0)
    pub_key: int = Field(..., ge=0, description="X координата адреса tab")

    model_config = {"frozen": True}

    def header_hash(self, hasher: HashPrimitive) -> int:
        return hasher.hash_many([self.base_token, self.quote_token, self.pub_key])

    def to_wire(self) -> dict[str, Any]:
        return {
            "base_token": self.base_token,
            "quote_token": self.quote_token,
            "base_blinding": str(self.base_blinding),
            "quote_blinding": str(self.quote_blinding),
            "pub_key": str(self.pub_key),
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "TabHeader":
        return cls(
            base_token=int(data["base_token"]),
            quote_token=int(data["quote_token"]),
            base_blinding=int(data["base_blinding"]),
            quote_blinding=int(data["quote_blinding"]),
            pub_key=int(data["pub_key"]),
        )


class OrderTab(BaseModel):
    """
    Модель order tab.

    Immutable (frozen=True).
    """

    tab_idx: int = Field(0, ge=0)
    tab_header: TabHeader
    base_amount: int = Field(..., ge=0, le=MAX_AMOUNT)
    quote_amount: int = Field(..., ge=0, le=MAX_AMOUNT)
    hash: int = Field(..., ge=0)

    model_config = {"frozen": True}

    @property
    def pub_key(self) -> int:
        return self.tab_header.pub_key

    @staticmethod
    def compute_hash(
        hasher: HashPrimitive, header: TabHeader, base_amount: int, quote_amount: int
    ) -> int:
        base_commitment = commit(hasher, base_amount, header.base_blinding)
        quote_commitment = commit(hasher, quote_amount, header.quote_blinding)
        return hasher.hash_many([header.header_hash(hasher), base_commitment, quote_commitment])

    @classmethod
    def build(
        cls,
        hasher: HashPrimitive,
        tab_header: TabHeader,
        base_amount: int,
        quote_amount: int,
        tab_idx: int = 0,
    ) -> "OrderTab":
        return cls(
            tab_idx=tab_idx,
            tab_header=tab_header,
            base_amount=base_amount,
            quote_amount=quote_amount,
            hash=cls.compute_hash(hasher, tab_header, base_amount, quote_amount),
        )

    @classmethod
    def from_stored(
        cls,
        hasher: HashPrimitive,
        tab_idx: int,
        tab_header: TabHeader,
        base_hidden_amount: int,
        base_commitment: int,
        quote_hidden_amount: int,
        quote_commitment: int,
    ) -> "OrderTab":
        """
        Восстановление tab из хранилища с проверкой обоих commitment.

        Raises:
            InvalidCommitment: Поддельные или повреждённые суммы
        """
        base_amount = reveal_with_blinding(
            hasher, tab_header.base_blinding, base_hidden_amount, base_commitment
        )
        quote_amount = reveal_with_blinding(
            hasher, tab_header.quote_blinding, quote_hidden_amount, quote_commitment
        )
        return cls.build(hasher, tab_header, base_amount, quote_amount, tab_idx)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any], hasher: HashPrimitive) -> "OrderTab":
        return cls.build(
            hasher,
            TabHeader.from_wire(data["tab_header"]),
            int(data["base_amount"]),
            int(data["quote_amount"]),
            int(data.get("tab_idx", 0)),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "tab_idx": self.tab_idx,
            "tab_header": self.tab_header.to_wire(),
            "base_amount": str(self.base_amount),
            "quote_amount": str(self.quote_amount),
        }
