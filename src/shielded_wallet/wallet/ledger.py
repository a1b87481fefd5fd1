"""Ledger — контейнер состояния кошелька.

Хранит по токенам ноты, позиции и order tabs, карты приватных ключей
(адрес.x → скаляр) для каждого типа сущности, счётчики адресов,
отслеживаемые id ордеров, замороженные ноты и зарегистрированные refund-ноты.

Ledger не содержит алгоритмов кроме учёта: выбор нот — CoinSelector,
слияние с удалённым состоянием — StateReconciler.

Инварианты:
- Внутри списка нот токена индексы уникальны (dedupe оставляет первое вхождение)
- Нота, выбранная CoinSelector, сразу удаляется из notes (нет состояния "reserved")
- Замороженные ноты (входы активных ордеров) хранятся отдельно по order_id и
  возвращаются в notes только после подтверждения отмены сервисом
"""

from dataclasses import dataclass, field
from typing import Callable, Hashable, Iterable, TypeVar

from shielded_wallet.core.domain.active_orders import ActivePerpOrder, ActiveSpotOrder
from shielded_wallet.core.domain.note import Note
from shielded_wallet.core.domain.order_tab import OrderTab
from shielded_wallet.core.domain.position import Position
from shielded_wallet.errors import InvalidPositionOrTab

T = TypeVar("T")


def note_identity(note: Note) -> Hashable:
    """Ключ дедупликации ноты: индекс, а для ещё не проиндексированных — хэш."""
    if note.index is not None:
        return note.index
    return ("hash", note.hash)


def dedupe(entries: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """
    Удаление дубликатов с сохранением первого вхождения.

    Args:
        entries: Исходная последовательность
        key: Функция ключа (обычно индекс)

    Returns:
        Новый список в исходном порядке без повторов ключа
    """
    seen: set = set()
    result: list[T] = []
    for entry in entries:
        k = key(entry)
        if k in seen:
            continue
        seen.add(k)
        result.append(entry)
    return result


@dataclass
class Ledger:
    """Состояние кошелька одной сессии."""

    # token -> ноты; synthetic_token -> позиции; base_token -> order tabs
    notes: dict[int, list[Note]] = field(default_factory=dict)
    positions: dict[int, list[Position]] = field(default_factory=dict)
    order_tabs: dict[int, list[OrderTab]] = field(default_factory=dict)

    # адрес.x -> приватный скаляр
    note_keys: dict[int, int] = field(default_factory=dict)
    position_keys: dict[int, int] = field(default_factory=dict)
    tab_keys: dict[int, int] = field(default_factory=dict)

    # token -> счётчик адресов
    note_counts: dict[int, int] = field(default_factory=dict)
    position_counts: dict[int, int] = field(default_factory=dict)
    tab_counts: dict[int, int] = field(default_factory=dict)

    order_ids: list[int] = field(default_factory=list)
    perp_order_ids: list[int] = field(default_factory=list)

    # order_id -> refund-нота, ожидающая исполнения ордера
    refund_notes: dict[int, Note] = field(default_factory=dict)
    # order_id -> ноты, заблокированные активным ордером
    frozen_notes: dict[int, list[Note]] = field(default_factory=dict)

    active_orders: list[ActiveSpotOrder] = field(default_factory=list)
    active_perp_orders: list[ActivePerpOrder] = field(default_factory=list)

    awaiting_order: bool = False

    # =========================================================================
    # NOTES
    # =========================================================================

    def available_amount(self, token: int) -> int:
        """Сумма amount всех тратимых нот токена (замороженные не учитываются)."""
        return sum(note.amount for note in self.notes.get(token, ()))

    def notes_for(self, token: int) -> list[Note]:
        return list(self.notes.get(token, ()))

    def add_note(self, note: Note) -> None:
        """Добавление ноты; повтор по индексу игнорируется."""
        self.merge_notes(note.token, [note])

    def merge_notes(self, token: int, notes: Iterable[Note]) -> None:
        merged = self.notes.get(token, []) + list(notes)
        self.notes[token] = dedupe(merged, note_identity)

    def remove_note(self, note: Note) -> bool:
        """
        Удаление ноты по индексу (или хэшу, если индекса нет).

        Returns:
            True если нота была в Ledger
        """
        current = self.notes.get(note.token, [])
        identity = note_identity(note)
        kept = [n for n in current if note_identity(n) != identity]
        self.notes[note.token] = kept
        return len(kept) != len(current)

    def remove_notes(self, notes: Iterable[Note]) -> None:
        for note in notes:
            self.remove_note(note)

    def dedupe_notes(self) -> None:
        for token, notes in self.notes.items():
            self.notes[token] = dedupe(notes, note_identity)

    # =========================================================================
    # FROZEN NOTES
    # =========================================================================

    def frozen_indices(self) -> set[int]:
        return {
            note.index
            for notes in self.frozen_notes.values()
            for note in notes
            if note.index is not None
        }

    def freeze(self, order_id: int, notes: Iterable[Note]) -> None:
        """Блокировка нот за ордером (ноты убираются из тратимого набора)."""
        notes = list(notes)
        self.remove_notes(notes)
        existing = self.frozen_notes.get(order_id, [])
        self.frozen_notes[order_id] = dedupe(existing + notes, note_identity)

    def release(self, order_id: int) -> list[Note]:
        """
        Возврат замороженных нот ордера в тратимый набор.

        Вызывается только после подтверждения отмены сервисом.

        Returns:
            Возвращённые ноты
        """
        notes = self.frozen_notes.pop(order_id, [])
        for note in notes:
            self.add_note(note)
        return notes

    def drop_frozen(self, order_id: int) -> list[Note]:
        """
        Забыть ордер, которого больше нет у сервиса: его замороженные ноты
        не возвращаются в тратимый набор, refund-нота снимается.

        Returns:
            Снятые замороженные ноты
        """
        self.refund_notes.pop(order_id, None)
        return self.frozen_notes.pop(order_id, [])

    # =========================================================================
    # POSITIONS
    # =========================================================================

    def add_position(self, position: Position) -> None:
        token = position.synthetic_token
        merged = self.positions.get(token, []) + [position]
        self.positions[token] = dedupe(merged, lambda p: p.index)

    def find_position(self, synthetic_token: int, position_address: int) -> Position:
        """
        Raises:
            InvalidPositionOrTab: Позиции с таким адресом нет
        """
        for position in self.positions.get(synthetic_token, ()):
            if position.position_address == position_address:
                return position
        raise InvalidPositionOrTab(
            f"Position {position_address} not found for synthetic token {synthetic_token}"
        )

    def find_position_any(self, position_address: int) -> Position:
        """
        Поиск позиции по адресу во всех токенах.

        Raises:
            InvalidPositionOrTab: Позиции с таким адресом нет
        """
        for token in self.positions:
            try:
                return self.find_position(token, position_address)
            except InvalidPositionOrTab:
                continue
        raise InvalidPositionOrTab(f"Position {position_address} not found")

    def remove_position(self, position: Position) -> None:
        token = position.synthetic_token
        self.positions[token] = [
            p for p in self.positions.get(token, ()) if p.index != position.index
        ]

    def dedupe_positions(self) -> None:
        for token, positions in self.positions.items():
            self.positions[token] = dedupe(positions, lambda p: p.index)

    # =========================================================================
    # ORDER TABS
    # =========================================================================

    def add_order_tab(self, tab: OrderTab) -> None:
        base = tab.tab_header.base_token
        merged = self.order_tabs.get(base, []) + [tab]
        self.order_tabs[base] = dedupe(merged, lambda t: t.pub_key)

    def find_order_tab(self, base_token: int, tab_address: int) -> OrderTab:
        """
        Raises:
            InvalidPositionOrTab: Tab с таким адресом нет
        """
        for tab in self.order_tabs.get(base_token, ()):
            if tab.pub_key == tab_address:
                return tab
        raise InvalidPositionOrTab(f"Order tab {tab_address} not found for base token {base_token}")

    def remove_order_tab(self, tab: OrderTab) -> None:
        base = tab.tab_header.base_token
        self.order_tabs[base] = [t for t in self.order_tabs.get(base, ()) if t.pub_key != tab.pub_key]

    # =========================================================================
    # ORDER TRACKING
    # =========================================================================

    def track_order(self, order_id: int, is_perp: bool) -> None:
        ids = self.perp_order_ids if is_perp else self.order_ids
        if order_id not in ids:
            ids.append(order_id)

    def untrack_order(self, order_id: int) -> None:
        for ids in (self.order_ids, self.perp_order_ids):
            while order_id in ids:
                ids.remove(order_id)
        self.refund_notes.pop(order_id, None)
