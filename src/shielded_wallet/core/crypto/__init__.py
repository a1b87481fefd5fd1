"""
Криптографические примитивы кошелька.

Арифметика поля, внешние хэш/подпись, вывод ключей и схема сокрытия сумм.
"""

# Field arithmetic
from shielded_wallet.core.crypto.field import (
    AMOUNT_BITS,
    FIELD_PRIME,
    KEY_BITS,
    MAX_AMOUNT,
    negate_mod_field,
    trim64,
    trim240,
    trim_bits,
    validate_amount,
    validate_key_length,
    validate_positive_amount,
)

# External primitives
from shielded_wallet.core.crypto.primitives import (
    CryptoSuite,
    EcdsaSigner,
    EcPoint,
    HashPrimitive,
    KeccakFieldHash,
    Signature,
    SignaturePrimitive,
)

# Key derivation
from shielded_wallet.core.crypto.key_derivation import (
    KeyDerivation,
    KeyKind,
    MasterKeys,
    derive_one_time_private_key,
    derive_subaddress_keys,
    kind_seed,
)

# Commitment scheme
from shielded_wallet.core.crypto.commitment import (
    HiddenAmount,
    commit,
    generate_blinding,
    hide,
    reveal,
    reveal_with_blinding,
)

__all__ = [
    # Field
    "AMOUNT_BITS",
    "FIELD_PRIME",
    "KEY_BITS",
    "MAX_AMOUNT",
    "negate_mod_field",
    "trim64",
    "trim240",
    "trim_bits",
    "validate_amount",
    "validate_key_length",
    "validate_positive_amount",
    # Primitives
    "CryptoSuite",
    "EcdsaSigner",
    "EcPoint",
    "HashPrimitive",
    "KeccakFieldHash",
    "Signature",
    "SignaturePrimitive",
    # Key derivation
    "KeyDerivation",
    "KeyKind",
    "MasterKeys",
    "derive_one_time_private_key",
    "derive_subaddress_keys",
    "kind_seed",
    # Commitment
    "HiddenAmount",
    "commit",
    "generate_blinding",
    "hide",
    "reveal",
    "reveal_with_blinding",
]
