"""
Тесты KeyRecovery

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Найденные ключи добавляются в карту ключей, существующие сохраняются
2. Счётчик токена = (max найденный + 1) % window, иначе 0
3. Ошибка или отмена скана отменяет все незавершённые проверки
4. Карты ключей и счётчики не меняются, если скан не завершился
"""

import asyncio

import pytest

from shielded_wallet.core.crypto.key_derivation import KeyKind
from shielded_wallet.wallet.recovery import KeyRecovery

BTC = 12345
ETH = 54321


def _address_x(session, kind, token, counter):
    return session.derivation.address_of(session.candidate_key(kind, token, counter)).x


class TestRecover:
    async def test_counter_after_highest_found(self, session, store):
        for counter in (0, 3):
            store.existing.add((KeyKind.NOTE, _address_x(session, KeyKind.NOTE, BTC, counter)))

        result = await KeyRecovery(session, store).recover(KeyKind.NOTE, tokens=[BTC, ETH])

        assert result.counters == {BTC: [0, 3]}
        assert result.found == 2
        assert session.ledger.note_counts == {BTC: 4, ETH: 0}
        for counter in (0, 3):
            address_x = _address_x(session, KeyKind.NOTE, BTC, counter)
            assert session.ledger.note_keys[address_x] == session.candidate_key(
                KeyKind.NOTE, BTC, counter
            )

    async def test_scans_full_window(self, session, store):
        await KeyRecovery(session, store).recover(KeyKind.POSITION, tokens=[BTC])
        assert len(store.exists_calls) == session.config.position_counter_window
        assert session.ledger.position_counts[BTC] == 0

    async def test_counter_wraps(self, session, store):
        last = session.config.note_counter_window - 1
        store.existing.add((KeyKind.NOTE, _address_x(session, KeyKind.NOTE, BTC, last)))
        await KeyRecovery(session, store).recover(KeyKind.NOTE, tokens=[BTC])
        assert session.ledger.note_counts[BTC] == 0

    async def test_existing_keys_preserved(self, session, store):
        session.ledger.tab_keys[111] = 222
        store.existing.add(
            (KeyKind.ORDER_TAB, _address_x(session, KeyKind.ORDER_TAB, BTC, 1))
        )
        await KeyRecovery(session, store).recover(KeyKind.ORDER_TAB, tokens=[BTC])
        assert session.ledger.tab_keys[111] == 222
        assert len(session.ledger.tab_keys) == 2
        assert session.ledger.tab_counts[BTC] == 2

    async def test_defaults_to_configured_tokens(self, session, store):
        await KeyRecovery(session, store).recover(KeyKind.NOTE)
        assert set(session.ledger.note_counts) == set(session.config.scan_tokens)


class _SlowStore:
    """Первая проверка падает (если fail_first), остальные висят до отмены."""

    def __init__(self, fail_first: bool):
        self.fail_first = fail_first
        self.started = 0
        self.cancelled = 0

    async def exists(self, kind, address_x):
        self.started += 1
        if self.fail_first and self.started == 1:
            raise ConnectionError("store lookup failed")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return False


class TestCancellation:
    async def test_lookup_error_cancels_siblings(self, session):
        store = _SlowStore(fail_first=True)
        with pytest.raises(ConnectionError):
            await KeyRecovery(session, store).recover(KeyKind.NOTE, tokens=[BTC])

        window = session.config.note_counter_window
        assert store.cancelled == window - 1
        assert session.ledger.note_counts == {}

    async def test_scan_cancellation_cancels_lookups(self, session):
        store = _SlowStore(fail_first=False)
        window = session.config.note_counter_window
        task = asyncio.create_task(KeyRecovery(session, store).recover(KeyKind.NOTE, tokens=[BTC]))
        while store.started < window:
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert store.cancelled == window
        assert session.ledger.note_keys == {}
