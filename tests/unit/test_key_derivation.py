"""
Тесты KeyDerivation и счётчиков адресов сессии

Проверяемые инварианты:
1. Вывод one-time ключа — чистая функция (kind, token, counter)
2. Адресные пространства разных типов и токенов не пересекаются
3. Счётчик сбрасывается в 0 после window адресов (32 ноты, 16 позиции/tabs)
4. Мастер-ключ из hex с префиксом 0x и без совпадает
"""

import pytest

from shielded_wallet.core.crypto.key_derivation import (
    KeyDerivation,
    KeyKind,
    MasterKeys,
    derive_one_time_private_key,
    derive_subaddress_keys,
    kind_seed,
)
from shielded_wallet.core.crypto.field import trim240
from shielded_wallet.errors import InvalidInput, InvalidKeyLength
from shielded_wallet.wallet.session import WalletSession

BTC = 12345
ETH = 54321


# =============================================================================
# ТЕСТЫ: MasterKeys
# =============================================================================


class TestMasterKeys:
    def test_hex_prefix_is_optional(self, suite):
        with_prefix = MasterKeys.from_private_key(suite.hasher, "0xABCDEF")
        without_prefix = MasterKeys.from_private_key(suite.hasher, "abcdef")
        assert with_prefix == without_prefix

    def test_int_and_hex_agree(self, suite):
        assert MasterKeys.from_private_key(suite.hasher, 0xABCDEF) == MasterKeys.from_private_key(
            suite.hasher, "0xabcdef"
        )

    def test_non_hex_rejected(self, suite):
        with pytest.raises(InvalidInput):
            MasterKeys.from_private_key(suite.hasher, "not-a-key")

    def test_master_keys_fit_240_bits(self, suite):
        keys = MasterKeys.from_private_key(suite.hasher, "0x1234")
        assert keys.view_key.bit_length() <= 240
        assert keys.spend_key.bit_length() <= 240

    def test_oversized_key_rejected(self, suite):
        with pytest.raises(InvalidKeyLength):
            MasterKeys.create(suite.hasher, 2**240, 1)

    def test_user_id_and_seed_depend_on_both_keys(self, suite):
        a = MasterKeys.create(suite.hasher, 1, 2)
        b = MasterKeys.create(suite.hasher, 1, 3)
        assert a.user_id != b.user_id
        assert a.private_seed != b.private_seed
        assert a.user_id != a.private_seed


# =============================================================================
# ТЕСТЫ: Pure derivation
# =============================================================================


class TestDerivation:
    def test_subaddress_keys_formula(self, suite):
        seed = kind_seed(suite.hasher, KeyKind.NOTE, BTC)
        ksi, kvi = derive_subaddress_keys(suite.hasher, 11, 22, seed)
        assert ksi == trim240(suite.hasher.hash2(11, seed))
        assert kvi == trim240(suite.hasher.hash2(22, seed))

    def test_one_time_key_formula(self, suite):
        point = suite.signer.public_key(777)
        key = derive_one_time_private_key(suite.hasher, point, 5, 3)
        assert key == trim240(suite.hasher.hash2(3, point.x)) + 5

    def test_negative_counter_rejected(self, suite):
        with pytest.raises(InvalidInput):
            derive_one_time_private_key(suite.hasher, suite.signer.public_key(7), 5, -1)

    def test_one_time_key_is_deterministic(self, session):
        derivation = KeyDerivation(session.suite, session.keys)
        first = derivation.one_time_private_key(KeyKind.NOTE, BTC, 4)
        second = session.derivation.one_time_private_key(KeyKind.NOTE, BTC, 4)
        assert first == second

    def test_kinds_and_tokens_are_separated(self, session):
        derivation = session.derivation
        keys = {
            derivation.one_time_private_key(KeyKind.NOTE, BTC, 0),
            derivation.one_time_private_key(KeyKind.POSITION, BTC, 0),
            derivation.one_time_private_key(KeyKind.ORDER_TAB, BTC, 0),
            derivation.one_time_private_key(KeyKind.NOTE, ETH, 0),
            derivation.one_time_private_key(KeyKind.NOTE, BTC, 1),
        }
        assert len(keys) == 5

    def test_deposit_key_outside_note_tree(self, session):
        deposit_key = session.deposit_private_key(BTC)
        note_keys = {session.candidate_key(KeyKind.NOTE, BTC, c) for c in range(32)}
        assert deposit_key not in note_keys
        assert deposit_key != session.deposit_private_key(ETH)

    def test_deposit_stark_key_is_public_x(self, session):
        public = session.suite.signer.public_key(session.deposit_private_key(BTC))
        assert session.deposit_stark_key(BTC) == public.x

    def test_tab_blindings_differ(self, session):
        address = session.suite.signer.public_key(12345)
        base, quote = session.derivation.tab_blindings(address)
        assert base != quote
        assert base != session.derivation.note_blinding(address)


# =============================================================================
# ТЕСТЫ: Session counters
# =============================================================================


class TestSessionCounters:
    def test_address_registers_private_key(self, session):
        destination = session.next_note_address(BTC)
        assert session.ledger.note_keys[destination.address.x] == destination.private_key
        assert session.suite.signer.public_key(destination.private_key) == destination.address

    def test_note_blinding_bound_to_address(self, session):
        destination = session.next_note_address(BTC)
        assert destination.blinding == session.derivation.note_blinding(destination.address)

    def test_counter_advances(self, session):
        session.next_note_address(BTC)
        session.next_note_address(BTC)
        assert session.ledger.note_counts[BTC] == 2

    def test_candidate_key_does_not_advance(self, session):
        key = session.candidate_key(KeyKind.NOTE, BTC, 0)
        assert session.ledger.note_counts == {}
        assert session.next_note_address(BTC).private_key == key

    def test_note_counter_wraps_at_32(self, session):
        first = session.next_note_address(BTC)
        for _ in range(31):
            session.next_note_address(BTC)
        assert session.ledger.note_counts[BTC] == 0
        assert session.next_note_address(BTC).address == first.address

    def test_position_counter_wraps_at_16(self, session):
        first = session.next_position_address(BTC)
        for _ in range(15):
            session.next_position_address(BTC)
        assert session.ledger.position_counts[BTC] == 0
        assert session.next_position_address(BTC).address == first.address

    def test_tab_counter_wraps_at_16(self, session):
        for _ in range(16):
            session.next_tab_address(BTC)
        assert session.ledger.tab_counts[BTC] == 0

    def test_counters_are_per_token(self, session):
        session.next_note_address(BTC)
        assert session.ledger.note_counts.get(ETH, 0) == 0

    def test_same_key_same_addresses(self, suite, config):
        a = WalletSession.from_private_key("0xfeed", suite, config)
        b = WalletSession.from_private_key("0xfeed", suite, config)
        assert a.next_note_address(BTC).address == b.next_note_address(BTC).address
