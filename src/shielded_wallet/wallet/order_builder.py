"""OrderBuilder — сборка и подпись всех типов транзакций.

Каждая процедура:
1. Проверяет входные поля: InvalidInput и прочие ошибки валидации ДО любых
   побочных эффектов (изъятие нот, сдвиг счётчиков)
2. Берёт входы через CoinSelector / поиск в Ledger
3. Выводит адреса назначения и сдачи через WalletSession
4. Считает канонический хэш сообщения
5. Подписывает: сумма ключей нот для трат нот, ключ позиции/tab для их действий
6. Мутирует Ledger (ноты уже изъяты CoinSelector, awaiting_order для ордеров)
7. Возвращает подписанное сообщение; выходные ноты сообщения фиксируются
   в Ledger после подтверждения сервисом (WalletService)

Сдача: для спот-нот, perp open, ликвидации, открытия и пополнения tab
refund-нота создаётся только при refund > dust(token); вывод всегда несёт
refund-ноту; add margin: при refund > 0 на адресе первой входной ноты.
"""

import logging
from typing import Any, Sequence, TypeVar

from pydantic import ValidationError

from shielded_wallet.core.crypto.field import validate_amount, validate_positive_amount
from shielded_wallet.core.domain.note import Note
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
from shielded_wallet.core.domain.position import OrderSide, Position
from shielded_wallet.errors import InsufficientFunds, InvalidInput, UnknownChainId
from shielded_wallet.wallet.coin_selector import CoinSelector, SelectionResult
from shielded_wallet.wallet.session import WalletSession

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=SignedMessage)


def _construct(model: type[M], **fields: Any) -> M:
    try:
        return model(**fields)
    except ValidationError as e:
        raise InvalidInput(f"Invalid {model.__name__}: {e}") from e


def _require(value: Any, name: str) -> None:
    if value is None:
        raise InvalidInput(f"{name} is required")


def _validate_non_negative(value: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInput(f"{name} must be a non-negative integer, got {value!r}")


def _validate_flag(value: bool, name: str) -> None:
    if not isinstance(value, bool):
        raise InvalidInput(f"{name} must be a bool, got {value!r}")


class OrderBuilder:
    """Конструктор подписанных сообщений для одной сессии."""

    def __init__(self, session: WalletSession):
        self.session = session
        self.selector = CoinSelector(session)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @property
    def _ledger(self):
        return self.session.ledger

    def _sign(self, message: M, private_keys: Sequence[int]) -> M:
        suite = self.session.suite
        signature = suite.sign_with_keys(private_keys, message.compute_hash(suite.hasher))
        return message.with_signature(signature)

    def _ensure_available(self, token: int, amount: int) -> None:
        available = self._ledger.available_amount(token)
        if available < amount:
            raise InsufficientFunds(token, amount, available)

    def _new_note(self, token: int, amount: int, index: int | None = None) -> Note:
        _validate_non_negative(token, "token")
        destination = self.session.next_note_address(token)
        try:
            return Note.build(
                self.session.suite.hasher,
                destination.address,
                token,
                amount,
                destination.blinding,
                index,
            )
        except ValidationError as e:
            raise InvalidInput(f"Invalid note: {e}") from e

    def _refund_above_dust(self, selection: SelectionResult, token: int) -> Note | None:
        if selection.refund > self.session.config.dust_amount(token):
            return self._new_note(token, selection.refund, selection.first_note.index)
        return None

    def _close_fields(self, token: int) -> CloseOrderFields:
        destination = self.session.next_note_address(token)
        return CloseOrderFields(
            dest_received_address=destination.address,
            dest_received_blinding=destination.blinding,
        )

    # =========================================================================
    # SPOT
    # =========================================================================

    def limit_order(
        self,
        expiration: int,
        token_spent: int,
        token_received: int,
        amount_spent: int,
        amount_received: int,
        fee_limit: int,
        order_side: SpotOrderSide | str | None = None,
        order_tab_address: int | None = None,
    ) -> LimitOrder:
        """
        Спот лимит-ордер из нот или из ликвидности order tab.

        Args:
            expiration: Время истечения (секунды)
            token_spent / token_received: Токены траты и получения
            amount_spent / amount_received: Суммы
            fee_limit: Лимит комиссии
            order_side: Buy/Sell (обязателен для tab-ордера: определяет base токен)
            order_tab_address: Адрес tab (None — ордер из нот)

        Raises:
            InvalidInput, InvalidDirection, InsufficientFunds, InvalidPositionOrTab
        """
        _validate_non_negative(expiration, "expiration")
        _validate_non_negative(fee_limit, "fee_limit")
        _validate_non_negative(token_spent, "token_spent")
        _validate_non_negative(token_received, "token_received")
        validate_positive_amount(amount_spent, "amount_spent")
        validate_positive_amount(amount_received, "amount_received")
        if token_spent == token_received:
            raise InvalidInput("token_spent and token_received must differ")

        common = dict(
            expiration=expiration,
            token_spent=token_spent,
            token_received=token_received,
            amount_spent=amount_spent,
            amount_received=amount_received,
            fee_limit=fee_limit,
        )

        if order_tab_address is not None:
            _require(order_side, "order_side")
            side = SpotOrderSide.parse(order_side)
            base_token = token_received if side is SpotOrderSide.BUY else token_spent
            tab = self._ledger.find_order_tab(base_token, order_tab_address)
            tab_key = self.session.tab_private_key(tab)
            order = _construct(LimitOrder, **common, order_tab=tab)
            order = self._sign(order, [tab_key])
        else:
            selection = self.selector.select(token_spent, amount_spent)
            received = self.session.next_note_address(token_received)
            refund_note = self._refund_above_dust(selection, token_spent)
            spot_info = SpotNotesInfo(
                dest_received_address=received.address,
                dest_received_blinding=received.blinding,
                notes_in=selection.notes,
                refund_note=refund_note,
            )
            order = _construct(LimitOrder, **common, spot_notes_info=spot_info)
            order = self._sign(order, selection.private_keys)

        self._ledger.awaiting_order = True
        logger.info(
            f"Built limit order {token_spent}->{token_received} "
            f"spent={amount_spent} received={amount_received}"
        )
        return order

    # =========================================================================
    # PERPETUALS
    # =========================================================================

    def perp_order(
        self,
        expiration: int,
        position_effect_type: PositionEffectType | str,
        order_side: OrderSide | str,
        synthetic_token: int,
        synthetic_amount: int,
        collateral_amount: int,
        fee_limit: int,
        position_address: int | None = None,
        initial_margin: int | None = None,
        allow_partial_liquidation: bool = True,
    ) -> PerpOrder:
        """
        Перп-ордер Open / Modify / Close.

        Open: коллатеральные ноты + initial_margin, новый адрес позиции,
        подпись суммой ключей нот.
        Close: существующая позиция, сторона заменяется противоположной стороне
        позиции, подпись ключом позиции.
        Modify: существующая позиция, без нот, подпись ключом позиции.

        Raises:
            InvalidInput, InvalidDirection, InsufficientFunds, InvalidPositionOrTab
        """
        effect = PositionEffectType.parse(position_effect_type)
        side = OrderSide.parse(order_side)
        _validate_non_negative(expiration, "expiration")
        _validate_non_negative(fee_limit, "fee_limit")
        _validate_non_negative(synthetic_token, "synthetic_token")
        _validate_flag(allow_partial_liquidation, "allow_partial_liquidation")
        validate_positive_amount(synthetic_amount, "synthetic_amount")
        validate_positive_amount(collateral_amount, "collateral_amount")

        collateral_token = self.session.config.collateral_token
        common = dict(
            expiration=expiration,
            position_effect_type=effect,
            synthetic_token=synthetic_token,
            synthetic_amount=synthetic_amount,
            collateral_amount=collateral_amount,
            fee_limit=fee_limit,
        )

        if effect is PositionEffectType.OPEN:
            _require(initial_margin, "initial_margin")
            validate_positive_amount(initial_margin, "initial_margin")
            self._ensure_available(collateral_token, initial_margin)

            selection = self.selector.select(collateral_token, initial_margin)
            refund_note = self._refund_above_dust(selection, collateral_token)
            position_address = self.session.next_position_address(synthetic_token)
            open_fields = OpenOrderFields(
                initial_margin=initial_margin,
                collateral_token=collateral_token,
                notes_in=selection.notes,
                refund_note=refund_note,
                position_address=position_address.address.x,
                allow_partial_liquidation=allow_partial_liquidation,
            )
            order = _construct(PerpOrder, **common, order_side=side, open_order_fields=open_fields)
            order = self._sign(order, selection.private_keys)
        else:
            _require(position_address, "position_address")
            position = self._ledger.find_position(synthetic_token, position_address)
            position_key = self.session.position_private_key(position)
            if effect is PositionEffectType.CLOSE:
                side = position.order_side.opposite()
                close_fields = self._close_fields(collateral_token)
                order = _construct(
                    PerpOrder,
                    **common,
                    order_side=side,
                    position=position,
                    close_order_fields=close_fields,
                )
            else:
                order = _construct(PerpOrder, **common, order_side=side, position=position)
            order = self._sign(order, [position_key])

        self._ledger.awaiting_order = True
        logger.info(
            f"Built perp {effect.value} {side.value} order: token={synthetic_token} "
            f"size={synthetic_amount} collateral={collateral_amount}"
        )
        return order

    def liquidation_order(
        self,
        liquidated_position: Position,
        synthetic_amount: int,
        collateral_amount: int,
        initial_margin: int,
        allow_partial_liquidation: bool = True,
    ) -> LiquidationOrder:
        """
        Ордер ликвидации: всегда свежие коллатеральные ноты и open fields.

        Raises:
            InvalidInput, InsufficientFunds
        """
        _require(liquidated_position, "liquidated_position")
        validate_positive_amount(synthetic_amount, "synthetic_amount")
        validate_positive_amount(collateral_amount, "collateral_amount")
        validate_positive_amount(initial_margin, "initial_margin")
        _validate_flag(allow_partial_liquidation, "allow_partial_liquidation")

        collateral_token = self.session.config.collateral_token
        synthetic_token = liquidated_position.synthetic_token
        self._ensure_available(collateral_token, initial_margin)

        selection = self.selector.select(collateral_token, initial_margin)
        refund_note = self._refund_above_dust(selection, collateral_token)
        position_address = self.session.next_position_address(synthetic_token)
        open_fields = OpenOrderFields(
            initial_margin=initial_margin,
            collateral_token=collateral_token,
            notes_in=selection.notes,
            refund_note=refund_note,
            position_address=position_address.address.x,
            allow_partial_liquidation=allow_partial_liquidation,
        )
        order = _construct(
            LiquidationOrder,
            position=liquidated_position,
            order_side=liquidated_position.order_side,
            synthetic_token=synthetic_token,
            synthetic_amount=synthetic_amount,
            collateral_amount=collateral_amount,
            open_order_fields=open_fields,
        )
        order = self._sign(order, selection.private_keys)

        self._ledger.awaiting_order = True
        logger.info(f"Built liquidation order for position {liquidated_position.position_address}")
        return order

    # =========================================================================
    # ON-CHAIN
    # =========================================================================

    def deposit(self, deposit_id: int, token: int, amount: int) -> Deposit:
        """
        Депозит: новая нота на свежем адресе, подпись ключом депозита H2(private_seed, token).

        Raises:
            InvalidInput: Некорректные поля
            UnknownChainId: chain id из deposit_id не в allow-list
        """
        _validate_non_negative(deposit_id, "deposit_id")
        _validate_non_negative(token, "token")
        validate_positive_amount(amount, "amount")
        chain_id = deposit_id >> 32
        if not self.session.config.is_known_chain(chain_id):
            raise UnknownChainId(chain_id)

        note = self._new_note(token, amount)
        deposit = _construct(
            Deposit,
            deposit_id=deposit_id,
            token=token,
            amount=amount,
            stark_key=self.session.deposit_stark_key(token),
            notes=(note,),
        )
        deposit = self._sign(deposit, [self.session.deposit_private_key(token)])
        logger.info(f"Built deposit {deposit_id} of {amount} token {token} (chain {chain_id})")
        return deposit

    def withdrawal(
        self,
        token: int,
        amount: int,
        recipient: int,
        chain_id: int,
        max_gas_fee: int = 0,
    ) -> Withdrawal:
        """
        Вывод средств; refund-нота создаётся всегда (нулевая хэшируется в 0).

        Raises:
            InvalidInput, UnknownChainId, InsufficientFunds
        """
        _validate_non_negative(token, "token")
        validate_positive_amount(amount, "amount")
        _validate_non_negative(recipient, "recipient")
        _validate_non_negative(max_gas_fee, "max_gas_fee")
        if not self.session.config.is_known_chain(chain_id):
            raise UnknownChainId(chain_id)

        selection = self.selector.select(token, amount)
        refund_note = self._new_note(token, selection.refund, selection.first_note.index)
        withdrawal = _construct(
            Withdrawal,
            chain_id=chain_id,
            token=token,
            amount=amount,
            recipient=recipient,
            max_gas_fee=max_gas_fee,
            notes_in=selection.notes,
            refund_note=refund_note,
        )
        withdrawal = self._sign(withdrawal, selection.private_keys)
        logger.info(f"Built withdrawal of {amount} token {token} to chain {chain_id}")
        return withdrawal

    # =========================================================================
    # NOTES / MARGIN
    # =========================================================================

    def restructure_notes(self, token: int, new_amount: int) -> SplitNotes | None:
        """
        Консолидация мелких нот в ноту new_amount (+ сдача).

        Новая нота переиспользует адрес/blinding первой входной ноты, сдача —
        последней.

        Returns:
            SplitNotes, либо None если сумма нулевая, превышает доступную или
            выгодного сплита нет
        """
        if not new_amount:
            return None
        validate_amount(new_amount, "new_amount")
        if new_amount > self._ledger.available_amount(token):
            return None

        selection = self.selector.select_split(token, new_amount)
        if selection is None:
            return None

        hasher = self.session.suite.hasher
        first, last = selection.notes[0], selection.notes[-1]
        new_note = Note.build(hasher, first.address, token, new_amount, first.blinding)
        refund_note = None
        if selection.refund > 0:
            refund_note = Note.build(hasher, last.address, token, selection.refund, last.blinding)

        split = _construct(
            SplitNotes, notes_in=selection.notes, new_note=new_note, refund_note=refund_note
        )
        split = self._sign(split, selection.private_keys)
        logger.info(f"Built note split for token {token}: {len(selection.notes)} notes -> {new_amount}")
        return split

    def change_margin(
        self,
        position_address: int,
        synthetic_token: int,
        direction: MarginDirection | str,
        amount: int,
    ) -> MarginChange:
        """
        Add: ноты коллатерала, подпись суммой их ключей.
        Remove: свежий адрес возврата, подпись ключом позиции.

        Raises:
            InvalidInput, InvalidDirection, InvalidPositionOrTab, InsufficientFunds
        """
        margin_direction = MarginDirection.parse(direction)
        validate_positive_amount(amount, "amount")
        position = self._ledger.find_position(synthetic_token, position_address)
        collateral_token = self.session.config.collateral_token

        if margin_direction is MarginDirection.ADD:
            self._ensure_available(collateral_token, amount)
            selection = self.selector.select(collateral_token, amount)
            refund_note = None
            if selection.refund > 0:
                first = selection.first_note
                refund_note = Note.build(
                    self.session.suite.hasher,
                    first.address,
                    collateral_token,
                    selection.refund,
                    first.blinding,
                    first.index,
                )
            change = _construct(
                MarginChange,
                direction=margin_direction,
                margin_change=amount,
                position=position,
                notes_in=selection.notes,
                refund_note=refund_note,
            )
            change = self._sign(change, selection.private_keys)
        else:
            position_key = self.session.position_private_key(position)
            change = _construct(
                MarginChange,
                direction=margin_direction,
                margin_change=amount,
                position=position,
                close_order_fields=self._close_fields(collateral_token),
            )
            change = self._sign(change, [position_key])

        logger.info(f"Built margin {margin_direction.value} of {amount} for position {position_address}")
        return change

    # =========================================================================
    # ORDER TABS
    # =========================================================================

    def open_order_tab(self, base_amount: int, quote_amount: int, market_id: int) -> OrderTabOpen:
        """
        Открытие order tab на рынке market_id.

        Raises:
            InvalidInput, InsufficientFunds
        """
        base_token, quote_token = self.session.config.market_tokens(market_id)
        validate_positive_amount(base_amount, "base_amount")
        validate_positive_amount(quote_amount, "quote_amount")
        self._ensure_available(base_token, base_amount)
        self._ensure_available(quote_token, quote_amount)

        base_selection = self.selector.select(base_token, base_amount)
        quote_selection = self.selector.select(quote_token, quote_amount)
        base_refund = self._refund_above_dust(base_selection, base_token)
        quote_refund = self._refund_above_dust(quote_selection, quote_token)

        tab_address = self.session.next_tab_address(base_token)
        header = TabHeader(
            base_token=base_token,
            quote_token=quote_token,
            base_blinding=tab_address.base_blinding,
            quote_blinding=tab_address.quote_blinding,
            pub_key=tab_address.address.x,
        )
        tab = OrderTab.build(self.session.suite.hasher, header, base_amount, quote_amount)

        message = _construct(
            OrderTabOpen,
            market_id=market_id,
            order_tab=tab,
            base_notes_in=base_selection.notes,
            base_refund_note=base_refund,
            quote_notes_in=quote_selection.notes,
            quote_refund_note=quote_refund,
        )
        message = self._sign(
            message, base_selection.private_keys + quote_selection.private_keys
        )
        logger.info(f"Built order tab open on market {market_id}: base={base_amount} quote={quote_amount}")
        return message

    def close_order_tab(self, market_id: int, tab_address: int) -> OrderTabClose:
        """
        Закрытие tab: обе суммы возвращаются на свежие адреса нот.

        Raises:
            InvalidInput, InvalidPositionOrTab, InvalidAddress
        """
        base_token, quote_token = self.session.config.market_tokens(market_id)
        tab = self._ledger.find_order_tab(base_token, tab_address)
        tab_key = self.session.tab_private_key(tab)

        message = _construct(
            OrderTabClose,
            market_id=market_id,
            order_tab=tab,
            base_close_order_fields=self._close_fields(base_token),
            quote_close_order_fields=self._close_fields(quote_token),
        )
        message = self._sign(message, [tab_key])
        logger.info(f"Built order tab close for tab {tab_address}")
        return message

    def modify_order_tab(
        self,
        market_id: int,
        tab_address: int,
        base_amount: int,
        quote_amount: int,
        is_add: bool,
    ) -> OrderTabModify:
        """
        Пополнение (is_add) или частичный вывод ликвидности tab.

        Пополнение возвращает refund-ноты как Note или None по каждой стороне.

        Raises:
            InvalidInput, InvalidPositionOrTab, InsufficientFunds, InvalidAddress
        """
        base_token, quote_token = self.session.config.market_tokens(market_id)
        validate_amount(base_amount, "base_amount")
        validate_amount(quote_amount, "quote_amount")
        if base_amount == 0 and quote_amount == 0:
            raise InvalidInput("at least one of base_amount and quote_amount must be positive")
        tab = self._ledger.find_order_tab(base_token, tab_address)

        if is_add:
            if base_amount:
                self._ensure_available(base_token, base_amount)
            if quote_amount:
                self._ensure_available(quote_token, quote_amount)

            base_notes: tuple[Note, ...] = ()
            quote_notes: tuple[Note, ...] = ()
            keys: tuple[int, ...] = ()
            base_refund = quote_refund = None
            if base_amount:
                selection = self.selector.select(base_token, base_amount)
                base_notes, keys = selection.notes, keys + selection.private_keys
                base_refund = self._refund_above_dust(selection, base_token)
            if quote_amount:
                selection = self.selector.select(quote_token, quote_amount)
                quote_notes, keys = selection.notes, keys + selection.private_keys
                quote_refund = self._refund_above_dust(selection, quote_token)

            message = _construct(
                OrderTabModify,
                market_id=market_id,
                order_tab=tab,
                is_add=True,
                base_amount=base_amount,
                quote_amount=quote_amount,
                base_notes_in=base_notes,
                quote_notes_in=quote_notes,
                base_refund_note=base_refund,
                quote_refund_note=quote_refund,
            )
            message = self._sign(message, keys)
        else:
            if base_amount > tab.base_amount or quote_amount > tab.quote_amount:
                raise InvalidInput(
                    f"cannot remove more than the tab holds "
                    f"(base {tab.base_amount}, quote {tab.quote_amount})"
                )
            tab_key = self.session.tab_private_key(tab)
            message = _construct(
                OrderTabModify,
                market_id=market_id,
                order_tab=tab,
                is_add=False,
                base_amount=base_amount,
                quote_amount=quote_amount,
                base_close_order_fields=self._close_fields(base_token),
                quote_close_order_fields=self._close_fields(quote_token),
            )
            message = self._sign(message, [tab_key])

        logger.info(
            f"Built order tab {'add' if is_add else 'remove'} for tab {tab_address}: "
            f"base={base_amount} quote={quote_amount}"
        )
        return message
