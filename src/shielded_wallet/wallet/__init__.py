"""
Wallet: операционный слой кошелька.

Ledger и сессия, выбор нот, сборка и подпись транзакций, реконсиляция
с сервисом расчётов, восстановление ключей.
"""

from shielded_wallet.wallet.ledger import Ledger, dedupe, note_identity
from shielded_wallet.wallet.session import (
    NoteAddress,
    PositionAddress,
    TabAddress,
    WalletSession,
)
from shielded_wallet.wallet.coin_selector import (
    STRICT_MIN_COMBINATION_NOTES,
    CoinSelector,
    SelectionResult,
    is_beneficial_split,
    plan_inputs,
    select_inputs,
)
from shielded_wallet.wallet.order_builder import OrderBuilder
from shielded_wallet.wallet.market_maker import MarketMakerActions
from shielded_wallet.wallet.reconciler import ReconcileResult, StateReconciler
from shielded_wallet.wallet.collaborators import (
    CachedKeyState,
    JsonFileKeyCache,
    KeyCache,
    SettlementResponse,
    SettlementService,
    StateStore,
)
from shielded_wallet.wallet.recovery import KeyRecovery, RecoveryResult
from shielded_wallet.wallet.service import LoginResult, Submission, WalletService

__all__ = [
    # State
    "Ledger",
    "dedupe",
    "note_identity",
    "WalletSession",
    "NoteAddress",
    "PositionAddress",
    "TabAddress",
    # Coin selection
    "CoinSelector",
    "SelectionResult",
    "plan_inputs",
    "select_inputs",
    "is_beneficial_split",
    "STRICT_MIN_COMBINATION_NOTES",
    # Builders
    "OrderBuilder",
    "MarketMakerActions",
    # Reconciliation / recovery
    "StateReconciler",
    "ReconcileResult",
    "KeyRecovery",
    "RecoveryResult",
    # Collaborators
    "SettlementService",
    "SettlementResponse",
    "StateStore",
    "KeyCache",
    "CachedKeyState",
    "JsonFileKeyCache",
    # Service
    "WalletService",
    "Submission",
    "LoginResult",
]
