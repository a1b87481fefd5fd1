"""
Field — арифметика над элементами поля и скалярами ключей.

Модуль обеспечивает:
- Константы поля (простой модуль P) и разрядности (240-битные ключи, 64-битные суммы)
- Обрезку хэшей до младших n бит (trim)
- Модульное отрицание (используется при Remove margin)
- Валидацию длины ключей и диапазона сумм

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. trim_bits(x, n) берёт МЛАДШИЕ n бит (x mod 2^n)
2. Все суммы нот — беззнаковые 64-битные
3. Приватные ключи мастер-пары не длиннее 240 бит
"""

from typing import Final

from shielded_wallet.errors import InvalidInput, InvalidKeyLength

# =============================================================================
# КОНСТАНТЫ ПОЛЯ
# =============================================================================

# Простой модуль поля: P = 2^251 + 17 * 2^192 + 1
FIELD_PRIME: Final[int] = 2**251 + 17 * 2**192 + 1

# Разрядность приватных скаляров
KEY_BITS: Final[int] = 240

# Разрядность сумм нот
AMOUNT_BITS: Final[int] = 64
MAX_AMOUNT: Final[int] = 2**AMOUNT_BITS - 1


# =============================================================================
# ОБРЕЗКА И МОДУЛЬНАЯ АРИФМЕТИКА
# =============================================================================


def trim_bits(value: int, n_bits: int) -> int:
    """
    Младшие n_bits бит значения.

    Args:
        value: Неотрицательное целое (обычно хэш)
        n_bits: Количество сохраняемых бит

    Returns:
        value mod 2^n_bits

    Examples:
        >>> trim_bits(0b1011, 2)
        3
    """
    if n_bits <= 0:
        raise ValueError(f"n_bits must be positive, got {n_bits}")
    if value < 0:
        raise ValueError(f"value must be non-negative, got {value}")
    return value & ((1 << n_bits) - 1)


def trim240(value: int) -> int:
    return trim_bits(value, KEY_BITS)


def trim64(value: int) -> int:
    return trim_bits(value, AMOUNT_BITS)


def to_field(value: int) -> int:
    """Приведение целого к элементу поля (mod P)."""
    return value % FIELD_PRIME


def negate_mod_field(value: int) -> int:
    """
    Отрицание |value| по модулю P.

    Returns:
        P - |value| (для value == 0 возвращает 0, а не P)
    """
    magnitude = abs(value) % FIELD_PRIME
    if magnitude == 0:
        return 0
    return FIELD_PRIME - magnitude


# =============================================================================
# ВАЛИДАЦИЯ
# =============================================================================


def validate_key_length(key: int, name: str = "private key") -> int:
    """
    Проверка 240-битного потолка ключа.

    Raises:
        InvalidKeyLength: Если ключ отрицателен или длиннее KEY_BITS
    """
    if key < 0:
        raise InvalidKeyLength(f"{name} must be non-negative")
    if key.bit_length() > KEY_BITS:
        raise InvalidKeyLength(f"{name} should be at most {KEY_BITS} bits, got {key.bit_length()}")
    return key


def validate_amount(amount: int, name: str = "amount") -> int:
    """
    Проверка беззнаковой 64-битной суммы.

    Raises:
        InvalidInput: Если сумма вне [0, 2^64)
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidInput(f"{name} must be an integer, got {type(amount).__name__}")
    if amount < 0 or amount > MAX_AMOUNT:
        raise InvalidInput(f"{name} must be in [0, 2^64), got {amount}")
    return amount


def validate_positive_amount(amount: int, name: str = "amount") -> int:
    """
    Проверка строго положительной 64-битной суммы.

    Raises:
        InvalidInput: Если сумма не положительна или вне диапазона
    """
    validate_amount(amount, name)
    if amount == 0:
        raise InvalidInput(f"{name} must be positive")
    return amount
