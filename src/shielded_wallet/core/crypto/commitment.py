"""
Commitment Scheme — сокрытие 64-битных сумм.

    blinding      = H2(address.x, seed)
    hidden_amount = amount XOR trim64(blinding)
    commitment    = H2(amount, blinding)

Пересчитать blinding может только владелец seed, поэтому внешний наблюдатель
не узнаёт сумму по публичному commitment.

КРИТИЧЕСКИЙ ИНВАРИАНТ:
reveal(hide(amount)) == amount; любое расхождение с commitment → InvalidCommitment.
"""

from typing import NamedTuple

from shielded_wallet.core.crypto.field import trim64, validate_amount
from shielded_wallet.core.crypto.primitives import EcPoint, HashPrimitive
from shielded_wallet.errors import InvalidCommitment


class HiddenAmount(NamedTuple):
    """Результат hide()."""

    blinding: int
    hidden_amount: int
    commitment: int


def generate_blinding(hasher: HashPrimitive, address: EcPoint, seed: int) -> int:
    return hasher.hash2(address.x, seed)


def commit(hasher: HashPrimitive, amount: int, blinding: int) -> int:
    return hasher.hash2(amount, blinding)


def hide(hasher: HashPrimitive, address: EcPoint, amount: int, seed: int) -> HiddenAmount:
    """
    Сокрытие суммы для адреса.

    Raises:
        InvalidInput: Если amount вне [0, 2^64)
    """
    validate_amount(amount)
    blinding = generate_blinding(hasher, address, seed)
    hidden_amount = amount ^ trim64(blinding)
    return HiddenAmount(
        blinding=blinding,
        hidden_amount=hidden_amount,
        commitment=commit(hasher, amount, blinding),
    )


def reveal_with_blinding(
    hasher: HashPrimitive, blinding: int, hidden_amount: int, commitment: int
) -> int:
    """
    Раскрытие суммы по уже известному blinding.

    Raises:
        InvalidCommitment: Если H2(amount, blinding) != commitment
    """
    amount = hidden_amount ^ trim64(blinding)
    if commit(hasher, amount, blinding) != commitment:
        raise InvalidCommitment("Invalid amount and blinding")
    return amount


def reveal(
    hasher: HashPrimitive, address: EcPoint, seed: int, hidden_amount: int, commitment: int
) -> int:
    """
    Раскрытие суммы ноты, адресованной кошельку.

    Raises:
        InvalidCommitment: Поддельные или повреждённые данные
    """
    blinding = generate_blinding(hasher, address, seed)
    return reveal_with_blinding(hasher, blinding, hidden_amount, commitment)
