"""StateReconciler — слияние авторитетного состояния сервиса в Ledger.

Запускается после login и после ответов сервиса расчётов. Единственный
механизм лечения Ledger, оставленного в несогласованном состоянии
прерванным вызовом OrderBuilder.

Шаги:
1. Удаление bad order id из отслеживания; ордера, которых нет ни в снимке,
   ни среди отслеживаемых, забываются вместе с замороженными и refund-нотами
   (ноты не возвращаются в тратимый набор, их адреса перечитываются из
   хранилища вызывающим кодом)
2. Заморозка нот, чьи индексы входят в notes_in активных спот-ордеров и
   Open перп-ордеров (по order_id)
3. Регистрация refund-нот активных ордеров по order_id
4. Слияние pfr-нот, адрес которых не заморожен: запись с тем же (hash, index)
   заменяется, затем дедупликация по индексу
5. Дедупликация позиций и нот по индексу

Повторное применение того же снимка не меняет Ledger.
"""

import logging
from dataclasses import dataclass

from shielded_wallet.core.domain.active_orders import ActiveOrdersSnapshot
from shielded_wallet.core.domain.note import Note
from shielded_wallet.wallet.ledger import Ledger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Итог слияния снимка."""

    removed_order_ids: tuple[int, ...]
    frozen_order_ids: tuple[int, ...]
    merged_pfr_notes: int
    skipped_pfr_notes: int
    dropped_order_ids: tuple[int, ...] = ()
    dropped_notes: tuple[Note, ...] = ()


class StateReconciler:
    """Слияние ActiveOrdersSnapshot в Ledger."""

    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    def reconcile(self, snapshot: ActiveOrdersSnapshot) -> ReconcileResult:
        ledger = self.ledger

        removed = self._drop_bad_ids(snapshot)
        dropped_ids, dropped_notes = self._forget_gone_orders(snapshot)

        # order_id -> индексы нот, заблокированных ордером
        locked: dict[int, set[int]] = {}
        for order in snapshot.orders:
            locked[order.order_id] = {n.index for n in order.notes_in if n.index is not None}
            if order.refund_note is not None:
                ledger.refund_notes[order.order_id] = order.refund_note
        for perp_order in snapshot.perp_orders:
            if not perp_order.locks_notes:
                continue
            locked[perp_order.order_id] = {
                n.index for n in perp_order.notes_in if n.index is not None
            }
            if perp_order.refund_note is not None:
                ledger.refund_notes[perp_order.order_id] = perp_order.refund_note

        frozen_ids = []
        for order_id, indices in locked.items():
            to_freeze = [
                note
                for notes in ledger.notes.values()
                for note in notes
                if note.index in indices
            ]
            if to_freeze:
                ledger.freeze(order_id, to_freeze)
                frozen_ids.append(order_id)
                logger.info(f"Froze {len(to_freeze)} notes for active order {order_id}")

        frozen_addresses = {
            note.address.x for notes in ledger.frozen_notes.values() for note in notes
        }
        merged = skipped = 0
        for note in snapshot.pfr_notes:
            if note.address.x in frozen_addresses:
                skipped += 1
                continue
            self._merge_pfr_note(note)
            merged += 1

        ledger.active_orders = list(snapshot.orders)
        ledger.active_perp_orders = list(snapshot.perp_orders)
        ledger.dedupe_notes()
        ledger.dedupe_positions()

        logger.debug(
            f"Reconciled snapshot: removed_ids={len(removed)} dropped_orders={len(dropped_ids)} "
            f"frozen_orders={len(frozen_ids)} "
            f"pfr_merged={merged} pfr_skipped={skipped}"
        )
        return ReconcileResult(
            removed_order_ids=tuple(removed),
            frozen_order_ids=tuple(frozen_ids),
            merged_pfr_notes=merged,
            skipped_pfr_notes=skipped,
            dropped_order_ids=tuple(dropped_ids),
            dropped_notes=tuple(dropped_notes),
        )

    def _drop_bad_ids(self, snapshot: ActiveOrdersSnapshot) -> list[int]:
        removed = []
        for ids, bad_ids in (
            (self.ledger.order_ids, snapshot.bad_order_ids),
            (self.ledger.perp_order_ids, snapshot.bad_perp_order_ids),
        ):
            for bad_id in bad_ids:
                if bad_id in ids:
                    ids.remove(bad_id)
                    removed.append(bad_id)
        if removed:
            logger.info(f"Dropped {len(removed)} order ids reported bad by the service")
        return removed

    def _forget_gone_orders(self, snapshot: ActiveOrdersSnapshot) -> tuple[list[int], list[Note]]:
        ledger = self.ledger
        keep = {order.order_id for order in snapshot.orders}
        keep.update(order.order_id for order in snapshot.perp_orders)
        keep.update(ledger.order_ids)
        keep.update(ledger.perp_order_ids)

        gone = sorted((set(ledger.frozen_notes) | set(ledger.refund_notes)) - keep)
        dropped: list[Note] = []
        for order_id in gone:
            dropped.extend(ledger.drop_frozen(order_id))
        if gone:
            logger.info(
                f"Forgot {len(gone)} orders no longer active, dropped {len(dropped)} frozen notes"
            )
        return gone, dropped

    def _merge_pfr_note(self, note: Note) -> None:
        current = self.ledger.notes.get(note.token, [])
        kept = [n for n in current if not (n.hash == note.hash and n.index == note.index)]
        self.ledger.notes[note.token] = kept + [note]
