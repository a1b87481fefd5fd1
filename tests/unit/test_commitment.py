"""
Тесты CommitmentScheme и проверки commitment при приёме сущностей

КРИТИЧЕСКИЙ ИНВАРИАНТ: reveal(hide(amount)) == amount, любая подмена → InvalidCommitment
"""

import pytest

from shielded_wallet.core.crypto.commitment import (
    commit,
    generate_blinding,
    hide,
    reveal,
    reveal_with_blinding,
)
from shielded_wallet.core.crypto.field import MAX_AMOUNT, trim64
from shielded_wallet.core.domain.note import Note
from shielded_wallet.core.domain.order_tab import OrderTab, TabHeader
from shielded_wallet.errors import InvalidCommitment, InvalidInput

SEED = 0xC0FFEE


@pytest.fixture
def address(suite):
    return suite.signer.public_key(424242)


class TestHideReveal:
    @pytest.mark.parametrize("amount", [0, 1, 300, 2**32 + 7, MAX_AMOUNT])
    def test_round_trip(self, suite, address, amount):
        hidden = hide(suite.hasher, address, amount, SEED)
        assert reveal(suite.hasher, address, SEED, hidden.hidden_amount, hidden.commitment) == amount

    def test_hidden_amount_formula(self, suite, address):
        hidden = hide(suite.hasher, address, 1000, SEED)
        assert hidden.blinding == generate_blinding(suite.hasher, address, SEED)
        assert hidden.hidden_amount == 1000 ^ trim64(hidden.blinding)
        assert hidden.commitment == commit(suite.hasher, 1000, hidden.blinding)

    def test_tampered_hidden_amount(self, suite, address):
        """Один флип бита hidden_amount → InvalidCommitment."""
        hidden = hide(suite.hasher, address, 5000, SEED)
        with pytest.raises(InvalidCommitment):
            reveal(suite.hasher, address, SEED, hidden.hidden_amount ^ 1, hidden.commitment)

    def test_wrong_seed(self, suite, address):
        hidden = hide(suite.hasher, address, 5000, SEED)
        with pytest.raises(InvalidCommitment):
            reveal(suite.hasher, address, SEED + 1, hidden.hidden_amount, hidden.commitment)

    def test_amount_out_of_range(self, suite, address):
        with pytest.raises(InvalidInput):
            hide(suite.hasher, address, MAX_AMOUNT + 1, SEED)
        with pytest.raises(InvalidInput):
            hide(suite.hasher, address, -1, SEED)


class TestStoredEntities:
    def test_note_from_stored(self, suite, address):
        hidden = hide(suite.hasher, address, 777, SEED)
        note = Note.from_stored(
            suite.hasher, address, 12345, 9, hidden.hidden_amount, hidden.commitment, hidden.blinding
        )
        assert note.amount == 777
        assert note.index == 9
        assert note.hash == suite.hasher.hash_many([address.x, 12345, hidden.commitment])

    def test_note_from_stored_rejects_forgery(self, suite, address):
        hidden = hide(suite.hasher, address, 777, SEED)
        with pytest.raises(InvalidCommitment):
            Note.from_stored(
                suite.hasher,
                address,
                12345,
                9,
                hidden.hidden_amount ^ 4,
                hidden.commitment,
                hidden.blinding,
            )

    def test_zero_note_hashes_to_zero(self, suite, address):
        note = Note.build(suite.hasher, address, 12345, 0, 5)
        assert note.hash == 0

    def test_order_tab_from_stored(self, suite, address):
        header = TabHeader(
            base_token=12345, quote_token=55555, base_blinding=111, quote_blinding=222, pub_key=address.x
        )
        base_commitment = commit(suite.hasher, 40, 111)
        quote_commitment = commit(suite.hasher, 900, 222)
        tab = OrderTab.from_stored(
            suite.hasher, 2, header, 40 ^ trim64(111), base_commitment, 900 ^ trim64(222), quote_commitment
        )
        assert (tab.base_amount, tab.quote_amount) == (40, 900)
        assert tab.hash == suite.hasher.hash_many(
            [header.header_hash(suite.hasher), base_commitment, quote_commitment]
        )

    def test_order_tab_rejects_forged_quote(self, suite, address):
        header = TabHeader(
            base_token=12345, quote_token=55555, base_blinding=111, quote_blinding=222, pub_key=address.x
        )
        with pytest.raises(InvalidCommitment):
            OrderTab.from_stored(
                suite.hasher,
                2,
                header,
                40 ^ trim64(111),
                commit(suite.hasher, 40, 111),
                901 ^ trim64(222),
                commit(suite.hasher, 900, 222),
            )

    def test_reveal_with_blinding(self, suite):
        commitment = commit(suite.hasher, 55, 999)
        assert reveal_with_blinding(suite.hasher, 999, 55 ^ trim64(999), commitment) == 55
