"""WalletSession — явное состояние сессии пользователя.

Сессия владеет мастер-ключами, Ledger, CryptoSuite и конфигом. Все операции
(CoinSelector, OrderBuilder, StateReconciler, recovery) получают сессию явно;
скрытого глобального состояния нет.

Одна сессия — один писатель: вызывающий код сериализует мутирующие запросы.
"""

import logging
from dataclasses import dataclass

from shielded_wallet.config import WalletConfig
from shielded_wallet.core.crypto.key_derivation import KeyDerivation, KeyKind, MasterKeys
from shielded_wallet.core.crypto.primitives import CryptoSuite, EcPoint
from shielded_wallet.core.domain.note import Note
from shielded_wallet.core.domain.order_tab import OrderTab
from shielded_wallet.core.domain.position import Position
from shielded_wallet.errors import InvalidAddress
from shielded_wallet.wallet.ledger import Ledger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoteAddress:
    """Свежий one-time адрес ноты с его ключом и blinding."""

    private_key: int
    address: EcPoint
    blinding: int


@dataclass(frozen=True)
class PositionAddress:
    private_key: int
    address: EcPoint


@dataclass(frozen=True)
class TabAddress:
    private_key: int
    address: EcPoint
    base_blinding: int
    quote_blinding: int


class WalletSession:
    """Сессия кошелька: ключи + Ledger + примитивы + конфиг."""

    def __init__(
        self,
        keys: MasterKeys,
        suite: CryptoSuite | None = None,
        config: WalletConfig | None = None,
        ledger: Ledger | None = None,
    ):
        self.keys = keys
        self.suite = suite or CryptoSuite()
        self.config = config or WalletConfig()
        self.ledger = ledger or Ledger()
        self.derivation = KeyDerivation(self.suite, keys)

    @classmethod
    def from_private_key(
        cls,
        private_key: int | str,
        suite: CryptoSuite | None = None,
        config: WalletConfig | None = None,
    ) -> "WalletSession":
        """
        Сессия из одного on-chain приватного ключа.

        Raises:
            InvalidInput: Ключ не является hex-строкой/целым
        """
        suite = suite or CryptoSuite()
        keys = MasterKeys.from_private_key(suite.hasher, private_key)
        return cls(keys, suite=suite, config=config)

    @property
    def user_id(self) -> int:
        return self.keys.user_id

    # =========================================================================
    # COUNTERS
    # =========================================================================

    def window(self, kind: KeyKind) -> int:
        if kind is KeyKind.NOTE:
            return self.config.note_counter_window
        if kind is KeyKind.POSITION:
            return self.config.position_counter_window
        return self.config.tab_counter_window

    def counters(self, kind: KeyKind) -> dict[int, int]:
        if kind is KeyKind.NOTE:
            return self.ledger.note_counts
        if kind is KeyKind.POSITION:
            return self.ledger.position_counts
        return self.ledger.tab_counts

    def key_map(self, kind: KeyKind) -> dict[int, int]:
        if kind is KeyKind.NOTE:
            return self.ledger.note_keys
        if kind is KeyKind.POSITION:
            return self.ledger.position_keys
        return self.ledger.tab_keys

    def _advance_counter(self, kind: KeyKind, token: int) -> int:
        """Текущее значение счётчика; сохранённое значение сдвигается по модулю окна."""
        counts = self.counters(kind)
        current = counts.get(token, 0)
        counts[token] = (current + 1) % self.window(kind)
        return current

    def candidate_key(self, kind: KeyKind, token: int, counter: int) -> int:
        """Ключ адреса №counter без изменения счётчиков (для recovery)."""
        return self.derivation.one_time_private_key(kind, token, counter)

    # =========================================================================
    # ADDRESSES
    # =========================================================================

    def next_note_address(self, token: int) -> NoteAddress:
        """Новый адрес ноты токена; ключ регистрируется в note_keys."""
        counter = self._advance_counter(KeyKind.NOTE, token)
        private_key = self.derivation.one_time_private_key(KeyKind.NOTE, token, counter)
        address = self.derivation.address_of(private_key)
        self.ledger.note_keys[address.x] = private_key
        logger.debug(f"Derived note address {address.short()} for token {token} (counter {counter})")
        return NoteAddress(
            private_key=private_key,
            address=address,
            blinding=self.derivation.note_blinding(address),
        )

    def next_position_address(self, synthetic_token: int) -> PositionAddress:
        counter = self._advance_counter(KeyKind.POSITION, synthetic_token)
        private_key = self.derivation.one_time_private_key(KeyKind.POSITION, synthetic_token, counter)
        address = self.derivation.address_of(private_key)
        self.ledger.position_keys[address.x] = private_key
        logger.debug(f"Derived position address {address.short()} for token {synthetic_token}")
        return PositionAddress(private_key=private_key, address=address)

    def next_tab_address(self, base_token: int) -> TabAddress:
        counter = self._advance_counter(KeyKind.ORDER_TAB, base_token)
        private_key = self.derivation.one_time_private_key(KeyKind.ORDER_TAB, base_token, counter)
        address = self.derivation.address_of(private_key)
        self.ledger.tab_keys[address.x] = private_key
        base_blinding, quote_blinding = self.derivation.tab_blindings(address)
        logger.debug(f"Derived order tab address {address.short()} for base token {base_token}")
        return TabAddress(
            private_key=private_key,
            address=address,
            base_blinding=base_blinding,
            quote_blinding=quote_blinding,
        )

    def deposit_private_key(self, token: int) -> int:
        return self.derivation.deposit_private_key(token)

    def deposit_stark_key(self, token: int) -> int:
        return self.derivation.deposit_stark_key(token)

    # =========================================================================
    # KEY LOOKUP
    # =========================================================================

    def note_private_key(self, note: Note) -> int:
        """
        Raises:
            InvalidAddress: Ключа для адреса ноты нет
        """
        try:
            return self.ledger.note_keys[note.address.x]
        except KeyError:
            raise InvalidAddress(f"No private key for note address {note.address.short()}") from None

    def position_private_key(self, position: Position) -> int:
        """
        Raises:
            InvalidAddress: Ключа для адреса позиции нет
        """
        try:
            return self.ledger.position_keys[position.position_address]
        except KeyError:
            raise InvalidAddress(f"No private key for position {position.position_address}") from None

    def tab_private_key(self, tab: OrderTab) -> int:
        """
        Raises:
            InvalidAddress: Ключа для адреса tab нет
        """
        try:
            return self.ledger.tab_keys[tab.pub_key]
        except KeyError:
            raise InvalidAddress(f"No private key for order tab {tab.pub_key}") from None
