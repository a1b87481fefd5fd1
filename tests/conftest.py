"""
Общие фикстуры и in-memory заглушки внешних систем.

- suite / config / session: reference-примитивы и сессия от фиксированного ключа
- fund / open_position / open_tab: наполнение Ledger сущностями кошелька
- verify_signature: проверка подписи против суммы приватных ключей
- FakeSettlement / FakeStore / InMemoryKeyCache: коллабораторы для async-сценариев
"""

from typing import Any, Mapping, Sequence

import pytest

from shielded_wallet.config import WalletConfig
from shielded_wallet.core.crypto.commitment import hide
from shielded_wallet.core.crypto.key_derivation import KeyKind
from shielded_wallet.core.crypto.primitives import CryptoSuite
from shielded_wallet.core.domain.note import Note
from shielded_wallet.core.domain.order_tab import OrderTab, TabHeader
from shielded_wallet.core.domain.position import OrderSide, Position, PositionHeader
from shielded_wallet.wallet.collaborators import CachedKeyState, SettlementResponse
from shielded_wallet.wallet.session import WalletSession

TEST_PRIVATE_KEY = "0x1a2b3c4d5e6f708192a3b4c5d6e7f8091a2b3c4d"

BTC = 12345
ETH = 54321
USDC = 55555
ETH_MAINNET = 9090909


# =============================================================================
# CORE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def suite():
    return CryptoSuite()


@pytest.fixture
def config():
    return WalletConfig()


@pytest.fixture
def session(suite, config):
    return WalletSession.from_private_key(TEST_PRIVATE_KEY, suite, config)


@pytest.fixture
def fund(session):
    """Добавляет в Ledger ноты на свежих адресах кошелька."""
    next_index = [1]

    def _fund(token: int, amounts: Sequence[int]) -> list[Note]:
        notes = []
        for amount in amounts:
            destination = session.next_note_address(token)
            note = Note.build(
                session.suite.hasher,
                destination.address,
                token,
                amount,
                destination.blinding,
                next_index[0],
            )
            next_index[0] += 1
            session.ledger.add_note(note)
            notes.append(note)
        return notes

    return _fund


@pytest.fixture
def open_position(session):
    """Добавляет в Ledger позицию на свежем адресе позиции кошелька."""

    def _open(
        synthetic_token: int = BTC,
        side: OrderSide = OrderSide.LONG,
        margin: int = 1_000_000,
        index: int = 7,
    ) -> Position:
        address = session.next_position_address(synthetic_token)
        position = Position(
            index=index,
            position_header=PositionHeader(
                synthetic_token=synthetic_token,
                position_address=address.address.x,
            ),
            order_side=side,
            position_size=1_000,
            margin=margin,
            entry_price=30_000_000_000,
            hash=987654321 + index,
        )
        session.ledger.add_position(position)
        return position

    return _open


@pytest.fixture
def open_tab(session):
    """Добавляет в Ledger order tab на свежем адресе tab кошелька."""

    def _open(market_id: int = 11, base_amount: int = 40_000, quote_amount: int = 1_500_000) -> OrderTab:
        base_token, quote_token = session.config.market_tokens(market_id)
        address = session.next_tab_address(base_token)
        header = TabHeader(
            base_token=base_token,
            quote_token=quote_token,
            base_blinding=address.base_blinding,
            quote_blinding=address.quote_blinding,
            pub_key=address.address.x,
        )
        tab = OrderTab.build(session.suite.hasher, header, base_amount, quote_amount, tab_idx=3)
        session.ledger.add_order_tab(tab)
        return tab

    return _open


@pytest.fixture
def verify_signature(session):
    """Проверка подписи сообщения суммой заданных приватных ключей."""

    def _verify(message, private_keys: Sequence[int]) -> bool:
        signer = session.suite.signer
        key_sum = sum(private_keys) % signer.curve_order
        public_key = signer.public_key(key_sum)
        message_hash = message.compute_hash(session.suite.hasher)
        return signer.verify(public_key, message_hash, message.signature)

    return _verify


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class FakeSettlement:
    """In-memory сервис расчётов: запоминает запросы, отвечает по сценарию."""

    def __init__(self):
        self.submitted: list[tuple[str, Mapping[str, Any]]] = []
        self.cancelled: list[int] = []
        self.amended: list[Mapping[str, Any]] = []
        self.next_responses: list[SettlementResponse] = []
        self.cancel_response = SettlementResponse(successful=True)
        self.active_orders: dict[str, Any] = {}
        self.order_requests: list[tuple[list[int], list[int]]] = []
        self._next_order_id = 100

    async def submit(self, operation: str, payload: Mapping[str, Any]) -> SettlementResponse:
        self.submitted.append((operation, payload))
        if self.next_responses:
            return self.next_responses.pop(0)
        self._next_order_id += 1
        return SettlementResponse(successful=True, order_id=self._next_order_id)

    async def cancel_order(self, order_id: int, is_perp: bool, user_id: int) -> SettlementResponse:
        self.cancelled.append(order_id)
        return self.cancel_response

    async def amend_order(self, payload: Mapping[str, Any]) -> SettlementResponse:
        self.amended.append(payload)
        return SettlementResponse(successful=True, payload={"amended": True})

    async def get_orders(self, order_ids: Sequence[int], perp_order_ids: Sequence[int]) -> Mapping[str, Any]:
        self.order_requests.append((list(order_ids), list(perp_order_ids)))
        return self.active_orders


class FakeStore:
    """In-memory хранилище: записи по address.x и множество существующих адресов."""

    def __init__(self):
        self.notes: dict[int, list[dict[str, Any]]] = {}
        self.positions: dict[int, list[dict[str, Any]]] = {}
        self.tabs: dict[int, list[dict[str, Any]]] = {}
        self.existing: set[tuple[KeyKind, int]] = set()
        self.failing_kinds: set[KeyKind] = set()
        self.exists_calls: list[tuple[KeyKind, int]] = []

    def put_note(self, hasher, address, token: int, amount: int, index: int, seed: int) -> None:
        hidden = hide(hasher, address, amount, seed)
        self.notes.setdefault(address.x, []).append(
            {
                "address": address.to_wire(),
                "token": token,
                "index": index,
                "hidden_amount": hidden.hidden_amount,
                "commitment": hidden.commitment,
            }
        )
        self.existing.add((KeyKind.NOTE, address.x))

    def put_position(self, position: Position) -> None:
        self.positions.setdefault(position.position_address, []).append(position.to_wire())
        self.existing.add((KeyKind.POSITION, position.position_address))

    def _maybe_fail(self, kind: KeyKind) -> None:
        # каждый тип падает один раз
        if kind in self.failing_kinds:
            self.failing_kinds.discard(kind)
            raise ConnectionError(f"{kind.value} store unavailable")

    async def fetch_notes(self, address_x: int, blinding: int) -> list[Mapping[str, Any]]:
        self._maybe_fail(KeyKind.NOTE)
        return list(self.notes.get(address_x, ()))

    async def fetch_positions(self, address_x: int) -> list[Mapping[str, Any]]:
        self._maybe_fail(KeyKind.POSITION)
        return list(self.positions.get(address_x, ()))

    async def fetch_order_tabs(self, address_x: int) -> list[Mapping[str, Any]]:
        self._maybe_fail(KeyKind.ORDER_TAB)
        return list(self.tabs.get(address_x, ()))

    async def exists(self, kind: KeyKind, address_x: int) -> bool:
        self.exists_calls.append((kind, address_x))
        return (kind, address_x) in self.existing


class InMemoryKeyCache:
    def __init__(self):
        self.entries: dict[int, CachedKeyState] = {}

    def load(self, user_id: int) -> CachedKeyState | None:
        return self.entries.get(user_id)

    def store(self, user_id: int, state: CachedKeyState) -> None:
        self.entries[user_id] = state


@pytest.fixture
def settlement():
    return FakeSettlement()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def key_cache():
    return InMemoryKeyCache()
