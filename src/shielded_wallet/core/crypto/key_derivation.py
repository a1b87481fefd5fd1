"""
Key Derivation — детерминированные subaddress и one-time адреса.

Схема:
    seed(kind, token) = H2(KIND_CONSTANT, token)
    ksi = trim240(H2(ks, seed)),   kvi = trim240(H2(kv, seed))
    ko  = trim240(H2(counter, Kvi.x)) + ksi,   Ko = ko·G

Каждый тип сущности (note / position / order_tab) использует свою
domain-separation константу, поэтому адресные пространства не пересекаются
ни между типами, ни между токенами.

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Все функции чистые: одинаковые (seed, counter) → одинаковый ключ
2. Значение счётчика однозначно определяет адрес — это позволяет
   восстанавливать ключи сканированием окна без сохранённого состояния
"""

from dataclasses import dataclass
from enum import Enum
from typing import Final

from shielded_wallet.core.crypto.field import trim240, validate_key_length
from shielded_wallet.core.crypto.primitives import CryptoSuite, EcPoint, HashPrimitive
from shielded_wallet.errors import InvalidInput

# =============================================================================
# DOMAIN-SEPARATION КОНСТАНТЫ
# =============================================================================

NOTE_SEED_RANDOMNESS: Final[int] = 328965294021249504871258328423859990890523432589236523
POSITION_SEED_RANDOMNESS: Final[int] = 87311195862357333589832472352389732849239571003295829
ORDER_TAB_SEED_RANDOMNESS: Final[int] = 3289651004221748755344442085963285230025892366052333

# Маски мастер-ключей
USER_ID_MASK: Final[int] = 172815432917432758348972343289652348293569370432238525823094893243
PRIVATE_SEED_MASK: Final[int] = 3289567280438953725403208532754302390573452930958285878326574839523
VIEW_KEY_MASK: Final[int] = 7689472303258934252343208597532492385943798632767034892572348289573
SPEND_KEY_MASK: Final[int] = 8232958253823489479856437527982347891347326348905738437643519378455


class KeyKind(str, Enum):
    """Тип сущности, для которой выводится адрес."""

    NOTE = "note"
    POSITION = "position"
    ORDER_TAB = "order_tab"

    @property
    def seed_randomness(self) -> int:
        return _KIND_SEED_RANDOMNESS[self]


_KIND_SEED_RANDOMNESS: Final[dict[KeyKind, int]] = {
    KeyKind.NOTE: NOTE_SEED_RANDOMNESS,
    KeyKind.POSITION: POSITION_SEED_RANDOMNESS,
    KeyKind.ORDER_TAB: ORDER_TAB_SEED_RANDOMNESS,
}


# =============================================================================
# ЧИСТЫЕ ФУНКЦИИ ВЫВОДА
# =============================================================================


def kind_seed(hasher: HashPrimitive, kind: KeyKind, token: int) -> int:
    """Domain seed для пары (тип сущности, токен)."""
    return hasher.hash2(kind.seed_randomness, token)


def derive_subaddress_keys(
    hasher: HashPrimitive, ks: int, kv: int, seed: int
) -> tuple[int, int]:
    """
    Приватные ключи subaddress.

    Args:
        hasher: H2 примитив
        ks: Мастер spend-скаляр
        kv: Мастер view-скаляр
        seed: Domain seed

    Returns:
        (ksi, kvi)
    """
    ksi = trim240(hasher.hash2(ks, seed))
    kvi = trim240(hasher.hash2(kv, seed))
    return ksi, kvi


def derive_one_time_private_key(
    hasher: HashPrimitive, kvi_point: EcPoint, ksi: int, counter: int
) -> int:
    """
    Приватный ключ one-time адреса: trim240(H2(counter, Kvi.x)) + ksi.

    Raises:
        InvalidInput: Если counter отрицателен
    """
    if counter < 0:
        raise InvalidInput(f"counter must be non-negative, got {counter}")
    return trim240(hasher.hash2(counter, kvi_point.x)) + ksi


# =============================================================================
# MASTER KEYS
# =============================================================================


@dataclass(frozen=True)
class MasterKeys:
    """
    Мастер-пара пользователя (kv, ks) и производные от неё идентификаторы.

    private_seed зависит и от kv: раскрытие kv позволяет показать историю,
    не давая права тратить средства.
    """

    view_key: int
    spend_key: int
    user_id: int
    private_seed: int

    @classmethod
    def create(cls, hasher: HashPrimitive, view_key: int, spend_key: int) -> "MasterKeys":
        """
        Raises:
            InvalidKeyLength: Если любой из ключей длиннее 240 бит
        """
        validate_key_length(view_key, "view key")
        validate_key_length(spend_key, "spend key")
        return cls(
            view_key=view_key,
            spend_key=spend_key,
            user_id=hasher.hash_many([USER_ID_MASK, view_key, spend_key]),
            private_seed=hasher.hash_many([PRIVATE_SEED_MASK, view_key, spend_key]),
        )

    @classmethod
    def from_private_key(cls, hasher: HashPrimitive, private_key: int | str) -> "MasterKeys":
        """
        Вывод (kv, ks) из одного on-chain приватного ключа.

        Args:
            private_key: int или hex-строка (с префиксом 0x или без)

        Raises:
            InvalidInput: Если строка не hex
        """
        if isinstance(private_key, str):
            text = private_key.strip().lower()
            if text.startswith("0x"):
                text = text[2:]
            try:
                key = int(text, 16)
            except ValueError:
                raise InvalidInput("Enter a hexadecimal private key") from None
        else:
            key = private_key

        view_key = trim240(hasher.hash2(VIEW_KEY_MASK, key))
        spend_key = trim240(hasher.hash2(SPEND_KEY_MASK, key))
        return cls.create(hasher, view_key, spend_key)


class KeyDerivation:
    """Вывод адресов от мастер-пары с заданным CryptoSuite."""

    def __init__(self, suite: CryptoSuite, keys: MasterKeys):
        self.suite = suite
        self.keys = keys

    def subaddress_keys(self, kind: KeyKind, token: int) -> tuple[int, int]:
        seed = kind_seed(self.suite.hasher, kind, token)
        return derive_subaddress_keys(self.suite.hasher, self.keys.spend_key, self.keys.view_key, seed)

    def one_time_private_key(self, kind: KeyKind, token: int, counter: int) -> int:
        """
        Приватный ключ адреса №counter для (kind, token).

        Чистая функция: вызов с тем же counter всегда даёт тот же ключ.
        """
        ksi, kvi = self.subaddress_keys(kind, token)
        kvi_point = self.suite.signer.public_key(kvi)
        return derive_one_time_private_key(self.suite.hasher, kvi_point, ksi, counter)

    def address_of(self, private_key: int) -> EcPoint:
        return self.suite.signer.public_key(private_key)

    def note_blinding(self, address: EcPoint) -> int:
        return self.suite.hasher.hash2(address.x, self.keys.private_seed)

    def tab_blindings(self, tab_address: EcPoint) -> tuple[int, int]:
        """(base_blinding, quote_blinding) order tab."""
        seed = self.keys.private_seed
        return (
            self.suite.hasher.hash2(tab_address.x, seed + 1),
            self.suite.hasher.hash2(tab_address.x, seed + 2),
        )

    def deposit_private_key(self, token: int) -> int:
        """Детерминированный ключ депозита, вне дерева вывода нот."""
        return self.suite.hasher.hash2(self.keys.private_seed, token)

    def deposit_stark_key(self, token: int) -> int:
        return self.suite.signer.public_key(self.deposit_private_key(token)).x
