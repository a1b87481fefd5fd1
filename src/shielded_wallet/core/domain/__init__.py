"""
Domain models and value objects.

Contains state entities (Note, Position, OrderTab) and transaction messages.
"""

from shielded_wallet.core.domain.active_orders import (
    ActiveOrdersSnapshot,
    ActivePerpOrder,
    ActiveSpotOrder,
)
from shielded_wallet.core.domain.mm_actions import (
    AddLiquidity,
    CloseMM,
    MMActionType,
    RegisterMM,
    RemoveLiquidity,
)
from shielded_wallet.core.domain.note import Note, hash_note_fields
from shielded_wallet.core.domain.order_tab import OrderTab, TabHeader
from shielded_wallet.core.domain.orders import (
    CloseOrderFields,
    Deposit,
    LimitOrder,
    LiquidationOrder,
    MarginChange,
    MarginDirection,
    OpenOrderFields,
    OrderTabClose,
    OrderTabModify,
    OrderTabOpen,
    PerpOrder,
    PositionEffectType,
    SignedMessage,
    SplitNotes,
    SpotNotesInfo,
    SpotOrderSide,
    Withdrawal,
)
from shielded_wallet.core.domain.position import OrderSide, Position, PositionHeader

__all__ = [
    # State entities
    "Note",
    "hash_note_fields",
    "Position",
    "PositionHeader",
    "OrderSide",
    "OrderTab",
    "TabHeader",
    # Enums
    "SpotOrderSide",
    "PositionEffectType",
    "MarginDirection",
    "MMActionType",
    # Order fields
    "CloseOrderFields",
    "OpenOrderFields",
    "SpotNotesInfo",
    # Messages
    "SignedMessage",
    "LimitOrder",
    "PerpOrder",
    "LiquidationOrder",
    "Deposit",
    "Withdrawal",
    "MarginChange",
    "SplitNotes",
    "OrderTabOpen",
    "OrderTabClose",
    "OrderTabModify",
    "RegisterMM",
    "AddLiquidity",
    "RemoveLiquidity",
    "CloseMM",
    # Remote state
    "ActiveOrdersSnapshot",
    "ActivePerpOrder",
    "ActiveSpotOrder",
]
