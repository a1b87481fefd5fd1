"""
Contract Validation Module

Валидация wire-формы исходящих сообщений кошелька (JSON Schema).
"""

from .validators import (
    ContractValidator,
    DepositValidator,
    LimitOrderValidator,
    LiquidationOrderValidator,
    MarginChangeValidator,
    MMActionValidator,
    OrderTabCloseValidator,
    OrderTabModifyValidator,
    OrderTabOpenValidator,
    PerpOrderValidator,
    SchemaLoader,
    SplitNotesValidator,
    WithdrawalValidator,
    validate_deposit,
    validate_limit_order,
    validate_liquidation_order,
    validate_margin_change,
    validate_message,
    validate_mm_action,
    validate_order_tab_close,
    validate_order_tab_modify,
    validate_order_tab_open,
    validate_perp_order,
    validate_split_notes,
    validate_withdrawal,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "DepositValidator",
    "WithdrawalValidator",
    "LimitOrderValidator",
    "PerpOrderValidator",
    "LiquidationOrderValidator",
    "MarginChangeValidator",
    "SplitNotesValidator",
    "OrderTabOpenValidator",
    "OrderTabCloseValidator",
    "OrderTabModifyValidator",
    "MMActionValidator",
    # Functions
    "validate_deposit",
    "validate_withdrawal",
    "validate_limit_order",
    "validate_perp_order",
    "validate_liquidation_order",
    "validate_margin_change",
    "validate_split_notes",
    "validate_order_tab_open",
    "validate_order_tab_close",
    "validate_order_tab_modify",
    "validate_mm_action",
    "validate_message",
]
