"""
Crypto Primitives — интерфейсы внешних хэш/подписи и их reference-реализации.

Хэш H2(a, b), H*(elements...) и подпись sign(scalar, hash) → (r, s) являются
внешними коллабораторами. Ядро работает только через протоколы
HashPrimitive / SignaturePrimitive, собранные в CryptoSuite.

Reference-реализации (для standalone-запуска и тестов):
- KeccakFieldHash: keccak-256 над 32-байтными big-endian элементами поля,
  результат по модулю FIELD_PRIME (pycryptodome)
- EcdsaSigner: детерминированная (RFC 6979) ECDSA на secp256k1 (ecdsa)

Production-окружение подставляет примитивы кривой и хэша сервиса расчётов.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Protocol, Sequence, runtime_checkable

from Crypto.Hash import keccak
from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.ellipticcurve import Point
from pydantic import BaseModel, Field

from shielded_wallet.core.crypto.field import FIELD_PRIME
from shielded_wallet.errors import InvalidInput


# =============================================================================
# VALUE OBJECTS
# =============================================================================


class EcPoint(BaseModel):
    """Точка кривой (публичный ключ / stealth-адрес)."""

    x: int = Field(..., ge=0, description="X координата")
    y: int = Field(..., ge=0, description="Y координата")

    model_config = {"frozen": True}

    def to_wire(self) -> dict[str, str]:
        return {"x": str(self.x), "y": str(self.y)}

    @classmethod
    def from_wire(cls, data: dict) -> "EcPoint":
        return cls(x=int(data["x"]), y=int(data["y"]))

    def short(self) -> str:
        """Укороченный hex X координаты для логов."""
        return f"0x{self.x:x}"[:12]


class Signature(BaseModel):
    """ECDSA подпись (r, s)."""

    r: int = Field(..., ge=0)
    s: int = Field(..., ge=0)

    model_config = {"frozen": True}

    def to_wire(self) -> dict[str, str]:
        return {"r": str(self.r), "s": str(self.s)}


# =============================================================================
# PROTOCOLS
# =============================================================================


@runtime_checkable
class HashPrimitive(Protocol):
    """Коллизионно-стойкий хэш над элементами поля."""

    def hash2(self, a: int, b: int) -> int:
        ...

    def hash_many(self, elements: Sequence[int]) -> int:
        ...


@runtime_checkable
class SignaturePrimitive(Protocol):
    """Подпись скалярным ключом и вывод публичной точки."""

    curve_order: int

    def public_key(self, private_key: int) -> EcPoint:
        ...

    def sign(self, private_key: int, message_hash: int) -> Signature:
        ...

    def verify(self, public_key: EcPoint, message_hash: int, signature: Signature) -> bool:
        ...


# =============================================================================
# REFERENCE IMPLEMENTATIONS
# =============================================================================


class KeccakFieldHash:
    """
    Keccak-256 хэш над элементами поля.

    Каждый вход приводится по модулю FIELD_PRIME и кодируется 32 байтами big-endian.
    H* дополнительно префиксуется длиной списка, поэтому H*(a, b) != H2(a, b).
    """

    def _digest(self, chunks: Sequence[int]) -> int:
        h = keccak.new(digest_bits=256)
        for value in chunks:
            h.update((value % FIELD_PRIME).to_bytes(32, "big"))
        return int.from_bytes(h.digest(), "big") % FIELD_PRIME

    def hash2(self, a: int, b: int) -> int:
        return self._digest((a, b))

    def hash_many(self, elements: Sequence[int]) -> int:
        return self._digest((len(elements), *elements))


class EcdsaSigner:
    """
    Детерминированная ECDSA (RFC 6979) на secp256k1.

    Приватный скаляр берётся по модулю порядка кривой, суммы ключей нот
    подписывают так же, как одиночные ключи.
    """

    def __init__(self) -> None:
        self._curve = SECP256k1
        self.curve_order: int = SECP256k1.order

    def _signing_key(self, private_key: int) -> SigningKey:
        scalar = private_key % self.curve_order
        if scalar == 0:
            raise InvalidInput("private key reduces to zero modulo the curve order")
        return SigningKey.from_secret_exponent(scalar, curve=self._curve)

    def public_key(self, private_key: int) -> EcPoint:
        point = self._signing_key(private_key).get_verifying_key().pubkey.point
        return EcPoint(x=int(point.x()), y=int(point.y()))

    def sign(self, private_key: int, message_hash: int) -> Signature:
        digest = (message_hash % FIELD_PRIME).to_bytes(32, "big")
        r, s = self._signing_key(private_key).sign_digest_deterministic(
            digest,
            hashfunc=hashlib.sha256,
            sigencode=lambda r, s, order: (r, s),
        )
        return Signature(r=r, s=s)

    def verify(self, public_key: EcPoint, message_hash: int, signature: Signature) -> bool:
        digest = (message_hash % FIELD_PRIME).to_bytes(32, "big")
        point = Point(self._curve.curve, public_key.x, public_key.y, self.curve_order)
        vk = VerifyingKey.from_public_point(point, curve=self._curve)
        try:
            return vk.verify_digest(
                (signature.r, signature.s),
                digest,
                sigdecode=lambda sig, order: sig,
            )
        except BadSignatureError:
            return False


# =============================================================================
# SUITE
# =============================================================================


@dataclass(frozen=True)
class CryptoSuite:
    """Пара внешних примитивов, используемая сессией."""

    hasher: HashPrimitive = field(default_factory=KeccakFieldHash)
    signer: SignaturePrimitive = field(default_factory=EcdsaSigner)

    def sign_with_keys(self, private_keys: Sequence[int], message_hash: int) -> Signature:
        """
        Подпись суммой приватных скаляров.

        Аддитивная агрегация ключей нот — часть wire-протокола (не мультиподпись):
        сумма берётся по модулю порядка кривой.
        """
        if not private_keys:
            raise InvalidInput("at least one private key is required to sign")
        key_sum = sum(private_keys) % self.signer.curve_order
        return self.signer.sign(key_sum, message_hash)
