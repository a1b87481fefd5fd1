"""
Тесты Ledger: учёт нот, позиций, order tabs и заморозки за ордерами
"""

import pytest

from shielded_wallet.core.domain.note import Note
from shielded_wallet.errors import InvalidPositionOrTab
from shielded_wallet.wallet.ledger import Ledger, dedupe

BTC = 12345
USDC = 55555


@pytest.fixture
def ledger():
    return Ledger()


@pytest.fixture
def note(suite):
    address = suite.signer.public_key(4321)

    def _note(amount, index, token=BTC):
        return Note.build(suite.hasher, address, token, amount, 77 + amount, index=index)

    return _note


class TestDedupe:
    def test_keeps_first_occurrence(self):
        assert dedupe([1, 2, 1, 3, 2], key=lambda x: x) == [1, 2, 3]

    def test_key_function(self):
        assert dedupe(["a", "B", "A"], key=str.lower) == ["a", "B"]


# =============================================================================
# ТЕСТЫ: Ноты
# =============================================================================


class TestNotes:
    def test_add_and_available(self, ledger, note):
        ledger.add_note(note(100, 1))
        ledger.add_note(note(250, 2))
        assert ledger.available_amount(BTC) == 350
        assert ledger.available_amount(USDC) == 0

    def test_duplicate_index_ignored(self, ledger, note):
        ledger.add_note(note(100, 1))
        ledger.add_note(note(999, 1))
        assert [n.amount for n in ledger.notes_for(BTC)] == [100]

    def test_unindexed_notes_dedupe_by_hash(self, ledger, note):
        ledger.add_note(note(100, None))
        ledger.add_note(note(100, None))
        ledger.add_note(note(200, None))
        assert len(ledger.notes_for(BTC)) == 2

    def test_remove_note(self, ledger, note):
        first = note(100, 1)
        ledger.add_note(first)
        ledger.add_note(note(200, 2))
        assert ledger.remove_note(first)
        assert not ledger.remove_note(first)
        assert ledger.available_amount(BTC) == 200

    def test_notes_for_returns_copy(self, ledger, note):
        ledger.add_note(note(100, 1))
        ledger.notes_for(BTC).clear()
        assert ledger.available_amount(BTC) == 100

    def test_dedupe_notes(self, ledger, note):
        ledger.notes[BTC] = [note(100, 1), note(100, 1), note(5, 2)]
        ledger.dedupe_notes()
        assert [n.index for n in ledger.notes[BTC]] == [1, 2]


# =============================================================================
# ТЕСТЫ: Заморозка
# =============================================================================


class TestFrozenNotes:
    def test_freeze_removes_from_spendable(self, ledger, note):
        locked = note(100, 1)
        ledger.add_note(locked)
        ledger.add_note(note(200, 2))
        ledger.freeze(42, [locked])
        assert ledger.available_amount(BTC) == 200
        assert ledger.frozen_indices() == {1}

    def test_release_restores_notes(self, ledger, note):
        locked = note(100, 1)
        ledger.add_note(locked)
        ledger.freeze(42, [locked])
        released = ledger.release(42)
        assert released == [locked]
        assert ledger.available_amount(BTC) == 100
        assert 42 not in ledger.frozen_notes

    def test_release_unknown_order(self, ledger):
        assert ledger.release(7) == []

    def test_freeze_is_idempotent(self, ledger, note):
        locked = note(100, 1)
        ledger.freeze(42, [locked])
        ledger.freeze(42, [locked])
        assert len(ledger.frozen_notes[42]) == 1

    def test_drop_frozen_forgets_order(self, ledger, note):
        locked = note(100, 1)
        ledger.add_note(locked)
        ledger.freeze(42, [locked])
        ledger.refund_notes[42] = note(30, None)
        dropped = ledger.drop_frozen(42)
        assert dropped == [locked]
        assert ledger.available_amount(BTC) == 0
        assert 42 not in ledger.frozen_notes
        assert 42 not in ledger.refund_notes


# =============================================================================
# ТЕСТЫ: Позиции и order tabs
# =============================================================================


class TestPositions:
    def test_find_position(self, session, open_position):
        position = open_position()
        ledger = session.ledger
        assert ledger.find_position(BTC, position.position_address) == position
        assert ledger.find_position_any(position.position_address) == position

    def test_missing_position(self, ledger):
        with pytest.raises(InvalidPositionOrTab):
            ledger.find_position(BTC, 123)
        with pytest.raises(InvalidPositionOrTab):
            ledger.find_position_any(123)

    def test_add_position_dedupes_by_index(self, session, open_position):
        position = open_position()
        session.ledger.add_position(position)
        assert session.ledger.positions[BTC] == [position]

    def test_remove_position(self, session, open_position):
        position = open_position()
        session.ledger.remove_position(position)
        with pytest.raises(InvalidPositionOrTab):
            session.ledger.find_position(BTC, position.position_address)


class TestOrderTabs:
    def test_find_and_remove(self, session, open_tab):
        tab = open_tab()
        ledger = session.ledger
        assert ledger.find_order_tab(BTC, tab.pub_key) == tab
        ledger.remove_order_tab(tab)
        with pytest.raises(InvalidPositionOrTab):
            ledger.find_order_tab(BTC, tab.pub_key)

    def test_add_dedupes_by_pub_key(self, session, open_tab):
        tab = open_tab()
        session.ledger.add_order_tab(tab)
        assert len(session.ledger.order_tabs[BTC]) == 1


# =============================================================================
# ТЕСТЫ: Отслеживание ордеров
# =============================================================================


class TestOrderTracking:
    def test_track_spot_and_perp(self, ledger):
        ledger.track_order(1, is_perp=False)
        ledger.track_order(1, is_perp=False)
        ledger.track_order(2, is_perp=True)
        assert ledger.order_ids == [1]
        assert ledger.perp_order_ids == [2]

    def test_untrack_drops_refund(self, ledger, note):
        ledger.track_order(1, is_perp=False)
        ledger.refund_notes[1] = note(50, None)
        ledger.untrack_order(1)
        assert ledger.order_ids == []
        assert 1 not in ledger.refund_notes
