"""WalletService — сессионные сценарии поверх внешних систем.

- login / load: ключи из KeyCache, конкурентная загрузка нот, позиций и tabs,
  recovery при ошибке загрузки, синхронизация активных ордеров
- submit-сценарии: сборка (OrderBuilder), проверка контракта (jsonschema),
  отправка в SettlementService, обработка результата в Ledger
- cancel / amend
- persist: запись ключевого материала и счётчиков в KeyCache

Отказ сервиса поднимается как RemoteRejected. Если причина — неизвестная
нота, перед повторным raise выполняется recovery нотных ключей. Ledger при
отказе остаётся в tentatively-spent состоянии, лечение — StateReconciler.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Generic, Mapping, Sequence, TypeVar

from shielded_wallet.config import WalletConfig
from shielded_wallet.core.contracts import validate_message
from shielded_wallet.core.crypto.key_derivation import KeyKind
from shielded_wallet.core.crypto.primitives import CryptoSuite
from shielded_wallet.core.domain.active_orders import ActiveOrdersSnapshot
from shielded_wallet.core.domain.note import Note
from shielded_wallet.core.domain.order_tab import OrderTab, TabHeader
from shielded_wallet.core.domain.orders import (
    LimitOrder,
    LiquidationOrder,
    MarginDirection,
    PerpOrder,
    PositionEffectType,
    SignedMessage,
    SpotOrderSide,
)
from shielded_wallet.core.domain.position import OrderSide, Position
from shielded_wallet.errors import InvalidCommitment, InvalidInput, RemoteRejected
from shielded_wallet.wallet.collaborators import (
    CachedKeyState,
    KeyCache,
    SettlementResponse,
    SettlementService,
    StateStore,
)
from shielded_wallet.wallet.market_maker import MarketMakerActions
from shielded_wallet.wallet.order_builder import OrderBuilder
from shielded_wallet.wallet.reconciler import ReconcileResult, StateReconciler
from shielded_wallet.wallet.recovery import KeyRecovery
from shielded_wallet.wallet.session import WalletSession

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=SignedMessage)


@dataclass(frozen=True)
class Submission(Generic[M]):
    """Отправленное сообщение и ответ сервиса."""

    message: M
    response: SettlementResponse

    @property
    def order_id(self) -> int | None:
        return self.response.order_id


@dataclass
class LoginResult:
    """Ключи, для которых в хранилище не нашлось сущностей."""

    empty_note_keys: list[int] = field(default_factory=list)
    empty_position_keys: list[int] = field(default_factory=list)
    empty_tab_keys: list[int] = field(default_factory=list)
    reconcile: ReconcileResult | None = None


def _with_indices(notes: Sequence[Note], response: SettlementResponse) -> list[Note]:
    """Индексы выходных нот из ответа сервиса (zero_idxs), если он их вернул."""
    indices = response.payload.get("zero_idxs") or ()
    result = []
    for i, note in enumerate(notes):
        if i < len(indices):
            note = note.with_index(int(indices[i]))
        result.append(note)
    return result


class WalletService:
    """Сервис кошелька одной сессии."""

    def __init__(
        self,
        session: WalletSession,
        settlement: SettlementService,
        store: StateStore,
        cache: KeyCache | None = None,
    ):
        self.session = session
        self.settlement = settlement
        self.store = store
        self.cache = cache
        self.builder = OrderBuilder(session)
        self.market_maker = MarketMakerActions(session)
        self.reconciler = StateReconciler(session.ledger)
        self.recovery = KeyRecovery(session, store)

    @property
    def ledger(self):
        return self.session.ledger

    # =========================================================================
    # LOGIN
    # =========================================================================

    @classmethod
    async def login(
        cls,
        private_key: int | str,
        settlement: SettlementService,
        store: StateStore,
        cache: KeyCache | None = None,
        suite: CryptoSuite | None = None,
        config: WalletConfig | None = None,
    ) -> "WalletService":
        """
        Создание сессии из приватного ключа и загрузка состояния.

        Raises:
            InvalidInput: Некорректный ключ
            InvalidKeyLength: Ключ длиннее 240 бит
            InvalidCommitment: Хранилище вернуло поддельные суммы
        """
        session = WalletSession.from_private_key(private_key, suite, config)
        service = cls(session, settlement, store, cache)
        await service.load()
        return service

    async def load(self) -> LoginResult:
        """Загрузка ключей из кэша и сущностей из хранилища."""
        cached = self.cache.load(self.session.user_id) if self.cache else None
        if cached is None:
            cached = CachedKeyState()
        self._restore_cached(cached)

        empty_notes, empty_positions, empty_tabs = await asyncio.gather(
            self._load_kind(KeyKind.NOTE, cached.note_keys),
            self._load_kind(KeyKind.POSITION, cached.position_keys),
            self._load_kind(KeyKind.ORDER_TAB, cached.tab_keys),
        )
        self.ledger.dedupe_positions()

        result = LoginResult(
            empty_note_keys=empty_notes,
            empty_position_keys=empty_positions,
            empty_tab_keys=empty_tabs,
        )
        if self.ledger.order_ids or self.ledger.perp_order_ids:
            result.reconcile = await self.sync_active_orders()

        self.persist()
        logger.info(
            f"Loaded wallet state: notes={sum(len(n) for n in self.ledger.notes.values())} "
            f"positions={sum(len(p) for p in self.ledger.positions.values())} "
            f"tabs={sum(len(t) for t in self.ledger.order_tabs.values())}"
        )
        return result

    def _restore_cached(self, cached: CachedKeyState) -> None:
        ledger = self.ledger
        ledger.note_counts.update(cached.note_counts)
        ledger.position_counts.update(cached.position_counts)
        ledger.tab_counts.update(cached.tab_counts)
        ledger.order_ids[:] = list(dict.fromkeys(ledger.order_ids + cached.order_ids))
        ledger.perp_order_ids[:] = list(
            dict.fromkeys(ledger.perp_order_ids + cached.perp_order_ids)
        )
        for kind, keys in (
            (KeyKind.NOTE, cached.note_keys),
            (KeyKind.POSITION, cached.position_keys),
            (KeyKind.ORDER_TAB, cached.tab_keys),
        ):
            key_map = self.session.key_map(kind)
            for private_key in keys:
                key_map[self.session.derivation.address_of(private_key).x] = private_key

    async def _load_kind(self, kind: KeyKind, private_keys: Sequence[int]) -> list[int]:
        try:
            return await self._fetch_kind(kind, private_keys)
        except InvalidCommitment:
            raise
        except Exception as e:
            logger.warning(f"Fetching {kind.value} data failed ({e}); running key recovery")
            await self.recovery.recover(kind)
            return await self._fetch_kind(kind, list(self.session.key_map(kind).values()))

    async def _fetch_kind(self, kind: KeyKind, private_keys: Sequence[int]) -> list[int]:
        """Загрузка сущностей по ключам; возвращает ключи без сущностей."""
        fetch = {
            KeyKind.NOTE: self._fetch_notes,
            KeyKind.POSITION: self._fetch_positions,
            KeyKind.ORDER_TAB: self._fetch_tabs,
        }[kind]
        found = await asyncio.gather(*(fetch(pk) for pk in private_keys))
        return [pk for pk, hit in zip(private_keys, found) if not hit]

    async def _fetch_notes(self, private_key: int) -> bool:
        derivation = self.session.derivation
        address = derivation.address_of(private_key)
        blinding = derivation.note_blinding(address)
        records = await self.store.fetch_notes(address.x, blinding)
        if not records:
            return False
        hasher = self.session.suite.hasher
        frozen = self.ledger.frozen_indices()
        for record in records:
            note = Note.from_stored(
                hasher,
                address,
                int(record["token"]),
                int(record["index"]),
                int(record["hidden_amount"]),
                int(record["commitment"]),
                blinding,
            )
            if note.index in frozen:
                continue
            self.ledger.add_note(note)
        self.ledger.note_keys[address.x] = private_key
        return True

    async def _fetch_positions(self, private_key: int) -> bool:
        address = self.session.derivation.address_of(private_key)
        records = await self.store.fetch_positions(address.x)
        if not records:
            return False
        for record in records:
            self.ledger.add_position(Position.from_wire(record))
        self.ledger.position_keys[address.x] = private_key
        return True

    async def _fetch_tabs(self, private_key: int) -> bool:
        derivation = self.session.derivation
        address = derivation.address_of(private_key)
        records = await self.store.fetch_order_tabs(address.x)
        if not records:
            return False
        base_blinding, quote_blinding = derivation.tab_blindings(address)
        hasher = self.session.suite.hasher
        for record in records:
            header = record["tab_header"]
            tab_header = TabHeader(
                base_token=int(header["base_token"]),
                quote_token=int(header["quote_token"]),
                base_blinding=base_blinding,
                quote_blinding=quote_blinding,
                pub_key=address.x,
            )
            tab = OrderTab.from_stored(
                hasher,
                int(record.get("tab_idx", 0)),
                tab_header,
                int(record["base_hidden_amount"]),
                int(record["base_commitment"]),
                int(record["quote_hidden_amount"]),
                int(record["quote_commitment"]),
            )
            self.ledger.add_order_tab(tab)
        self.ledger.tab_keys[address.x] = private_key
        return True

    async def sync_active_orders(self) -> ReconcileResult:
        """Запрос активных ордеров у сервиса и слияние в Ledger."""
        raw = await self.settlement.get_orders(
            list(self.ledger.order_ids), list(self.ledger.perp_order_ids)
        )
        snapshot = ActiveOrdersSnapshot.from_wire(raw, self.session.suite.hasher)
        result = self.reconciler.reconcile(snapshot)
        if result.dropped_notes:
            await self._refetch_notes(result.dropped_notes)
        self.persist()
        return result

    async def _refetch_notes(self, notes: Sequence[Note]) -> None:
        """Перечитать адреса нот забытых ордеров: в хранилище остались только непотраченные."""
        note_keys = self.ledger.note_keys
        keys = sorted({note_keys[n.address.x] for n in notes if n.address.x in note_keys})
        await self._fetch_kind(KeyKind.NOTE, keys)
        logger.info(f"Refetched {len(keys)} note addresses of orders no longer active")

    async def recover(self, kind: KeyKind) -> int:
        """
        Скан ключей типа kind и загрузка найденных сущностей.

        Returns:
            Число найденных ключей
        """
        result = await self.recovery.recover(kind)
        await self._fetch_kind(kind, list(result.keys.values()))
        self.persist()
        return result.found

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def _submit(self, operation: str, message: M) -> Submission[M]:
        payload = validate_message(message)
        response = await self.settlement.submit(operation, payload)
        if response.successful:
            return Submission(message=message, response=response)

        error = RemoteRejected(operation, response.error_message or "unknown error")
        logger.warning(f"{operation} rejected by settlement service: {error.reason}")
        if isinstance(message, (LimitOrder, PerpOrder, LiquidationOrder)):
            self.ledger.awaiting_order = False
        if error.is_missing_note:
            await self.recover(KeyKind.NOTE)
        else:
            self.persist()
        raise error

    def _track(self, order_id: int | None, is_perp: bool, notes_in: Sequence[Note], refund: Note | None) -> None:
        ledger = self.ledger
        ledger.awaiting_order = False
        if order_id is None:
            return
        ledger.track_order(order_id, is_perp)
        if notes_in:
            ledger.freeze(order_id, notes_in)
        if refund is not None:
            ledger.refund_notes[order_id] = refund
        logger.info(f"Tracking {'perp' if is_perp else 'spot'} order {order_id}")

    def _add_outputs(self, notes: Sequence[Note | None], response: SettlementResponse) -> None:
        for note in _with_indices([n for n in notes if n is not None and n.amount > 0], response):
            self.ledger.add_note(note)

    async def deposit(self, deposit_id: int, token: int, amount: int) -> Submission:
        message = self.builder.deposit(deposit_id, token, amount)
        submission = await self._submit("deposit", message)
        self._add_outputs(message.notes, submission.response)
        self.persist()
        return submission

    async def withdrawal(
        self, token: int, amount: int, recipient: int, chain_id: int, max_gas_fee: int = 0
    ) -> Submission:
        message = self.builder.withdrawal(token, amount, recipient, chain_id, max_gas_fee)
        submission = await self._submit("withdrawal", message)
        self.ledger.remove_notes(message.notes_in)
        self._add_outputs([message.refund_note], submission.response)
        self.persist()
        return submission

    async def limit_order(
        self,
        expiration: int,
        token_spent: int,
        token_received: int,
        amount_spent: int,
        amount_received: int,
        fee_limit: int,
        order_side: SpotOrderSide | str | None = None,
        order_tab_address: int | None = None,
    ) -> Submission:
        message = self.builder.limit_order(
            expiration,
            token_spent,
            token_received,
            amount_spent,
            amount_received,
            fee_limit,
            order_side=order_side,
            order_tab_address=order_tab_address,
        )
        submission = await self._submit("limit_order", message)
        info = message.spot_notes_info
        self._track(
            submission.order_id,
            False,
            info.notes_in if info else (),
            info.refund_note if info else None,
        )
        self.persist()
        return submission

    async def perp_order(
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
    ) -> Submission:
        message = self.builder.perp_order(
            expiration,
            position_effect_type,
            order_side,
            synthetic_token,
            synthetic_amount,
            collateral_amount,
            fee_limit,
            position_address=position_address,
            initial_margin=initial_margin,
            allow_partial_liquidation=allow_partial_liquidation,
        )
        submission = await self._submit("perp_order", message)
        fields = message.open_order_fields
        self._track(
            submission.order_id,
            True,
            fields.notes_in if fields else (),
            fields.refund_note if fields else None,
        )
        self.persist()
        return submission

    async def liquidation_order(
        self,
        liquidated_position: Position,
        synthetic_amount: int,
        collateral_amount: int,
        initial_margin: int,
        allow_partial_liquidation: bool = True,
    ) -> Submission:
        message = self.builder.liquidation_order(
            liquidated_position,
            synthetic_amount,
            collateral_amount,
            initial_margin,
            allow_partial_liquidation,
        )
        submission = await self._submit("liquidation_order", message)
        fields = message.open_order_fields
        self._track(submission.order_id, True, fields.notes_in, fields.refund_note)
        self.persist()
        return submission

    async def restructure_notes(self, token: int, new_amount: int) -> Submission | None:
        message = self.builder.restructure_notes(token, new_amount)
        if message is None:
            return None
        submission = await self._submit("split_notes", message)
        self._add_outputs([message.new_note, message.refund_note], submission.response)
        self.persist()
        return submission

    async def change_margin(
        self,
        position_address: int,
        synthetic_token: int,
        direction: MarginDirection | str,
        amount: int,
    ) -> Submission:
        message = self.builder.change_margin(position_address, synthetic_token, direction, amount)
        submission = await self._submit("margin_change", message)
        self._add_outputs([message.refund_note], submission.response)
        self._replace_position(message.position, submission.response)
        self.persist()
        return submission

    def _replace_position(self, old: Position, response: SettlementResponse) -> None:
        updated = response.payload.get("position")
        if not updated:
            return
        self.ledger.remove_position(old)
        self.ledger.add_position(Position.from_wire(updated))

    async def open_order_tab(self, base_amount: int, quote_amount: int, market_id: int) -> Submission:
        message = self.builder.open_order_tab(base_amount, quote_amount, market_id)
        submission = await self._submit("open_order_tab", message)
        tab = message.order_tab
        if "tab_idx" in submission.response.payload:
            tab = tab.model_copy(update={"tab_idx": int(submission.response.payload["tab_idx"])})
        self.ledger.add_order_tab(tab)
        self._add_outputs(
            [message.base_refund_note, message.quote_refund_note], submission.response
        )
        self.persist()
        return submission

    async def close_order_tab(self, market_id: int, tab_address: int) -> Submission:
        message = self.builder.close_order_tab(market_id, tab_address)
        submission = await self._submit("close_order_tab", message)
        self.ledger.remove_order_tab(message.order_tab)
        self.persist()
        return submission

    async def modify_order_tab(
        self,
        market_id: int,
        tab_address: int,
        base_amount: int,
        quote_amount: int,
        is_add: bool,
    ) -> Submission:
        message = self.builder.modify_order_tab(
            market_id, tab_address, base_amount, quote_amount, is_add
        )
        submission = await self._submit("modify_order_tab", message)
        tab = message.order_tab
        sign = 1 if is_add else -1
        updated = OrderTab.build(
            self.session.suite.hasher,
            tab.tab_header,
            tab.base_amount + sign * base_amount,
            tab.quote_amount + sign * quote_amount,
            tab.tab_idx,
        )
        self.ledger.remove_order_tab(tab)
        self.ledger.add_order_tab(updated)
        if is_add:
            self._add_outputs(
                [message.base_refund_note, message.quote_refund_note], submission.response
            )
        self.persist()
        return submission

    async def mm_action(self, action: Mapping[str, Any]) -> Submission:
        """
        Подпись и отправка MM-действия по его action_type.

        Raises:
            InvalidInput: Неизвестный action_type
        """
        handlers = {
            "register_mm": self.market_maker.register_mm,
            "add_liquidity": self.market_maker.add_liquidity,
            "remove_liquidity": self.market_maker.remove_liquidity,
            "close_mm": self.market_maker.close_mm,
        }
        action_type = action.get("action_type")
        if action_type not in handlers:
            raise InvalidInput(f"Unknown MM action type {action_type!r}")
        message = handlers[action_type](action)
        submission = await self._submit(str(action_type), message)
        self.persist()
        return submission

    # =========================================================================
    # CANCEL / AMEND
    # =========================================================================

    async def cancel_order(self, order_id: int, is_perp: bool) -> list[Note]:
        """
        Отмена ордера. Замороженные ноты возвращаются только после подтверждения.

        Returns:
            Возвращённые в Ledger ноты

        Raises:
            RemoteRejected: Сервис отказал в отмене (Ledger не меняется)
        """
        response = await self.settlement.cancel_order(order_id, is_perp, self.session.user_id)
        if not response.successful:
            error = RemoteRejected("cancel_order", response.error_message or "unknown error")
            logger.warning(f"Cancel of order {order_id} rejected: {error.reason}")
            raise error

        released = self.ledger.release(order_id)
        self.ledger.untrack_order(order_id)
        self.ledger.awaiting_order = False
        logger.info(f"Order {order_id} cancelled, released {len(released)} notes")
        self.persist()
        return released

    async def amend_order(self, payload: Mapping[str, Any]) -> SettlementResponse:
        """
        Raises:
            RemoteRejected: Сервис отказал
        """
        response = await self.settlement.amend_order(payload)
        if not response.successful:
            raise RemoteRejected("amend_order", response.error_message or "unknown error")
        return response

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def persist(self) -> None:
        if self.cache is None:
            return
        ledger = self.ledger
        state = CachedKeyState(
            note_keys=list(ledger.note_keys.values()),
            position_keys=list(ledger.position_keys.values()),
            tab_keys=list(ledger.tab_keys.values()),
            order_ids=list(ledger.order_ids),
            perp_order_ids=list(ledger.perp_order_ids),
            note_counts=dict(ledger.note_counts),
            position_counts=dict(ledger.position_counts),
            tab_counts=dict(ledger.tab_counts),
        )
        self.cache.store(self.session.user_id, state)
