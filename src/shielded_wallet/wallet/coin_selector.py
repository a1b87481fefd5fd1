"""CoinSelector — выбор нот для покрытия траты и расчёт сдачи.

Алгоритм (по порядку):
1. No-refund поиск: DFS по комбинациям (не перестановкам) кандидатов,
   отсортированных по возрастанию. Ветка перестаёт расширяться, как только её
   сумма >= target; соседние ветки продолжают перебираться. Комбинация подходит,
   если сумма в [target, target + dust]. Из подходящих берётся комбинация с
   НАИБОЛЬШИМ числом нот (при равенстве — первая найденная).
2. Fallback: жадно берём ноты от самой крупной, пока сумма < target;
   refund = sum - target.
3. Если не хватает всех нот — InsufficientFunds (Ledger не меняется).
4. Strict (реструктуризация): отказ (None), если комбинация из <= 5 нот или
   если refund fallback-а меньше dust.

Полный перебор экспоненциален: при числе кандидатов больше
max_combination_candidates шаг 1 пропускается.

Закон сохранения: sum(selected) == target + refund + dust_absorbed, где
dust_absorbed > 0 только в no-refund ветке (излишек в пределах dust).
"""

import logging
from dataclasses import dataclass, replace
from typing import Final, Sequence

from shielded_wallet.config import MAX_COMBINATION_CANDIDATES
from shielded_wallet.core.crypto.field import validate_positive_amount
from shielded_wallet.core.domain.note import Note
from shielded_wallet.errors import InsufficientFunds
from shielded_wallet.wallet.session import WalletSession

logger = logging.getLogger(__name__)

# Strict-режим требует больше этого числа нот в no-refund комбинации
STRICT_MIN_COMBINATION_NOTES: Final[int] = 5


@dataclass(frozen=True)
class SelectionResult:
    """Результат выбора нот."""

    notes: tuple[Note, ...]
    target: int
    refund: int
    dust_absorbed: int
    used_combination: bool
    private_keys: tuple[int, ...] = ()

    @property
    def total(self) -> int:
        return sum(note.amount for note in self.notes)

    @property
    def first_note(self) -> Note:
        return self.notes[0]


def _find_combination(
    candidates: Sequence[Note], target: int, dust: int
) -> tuple[Note, ...] | None:
    best: tuple[Note, ...] | None = None
    partial: list[Note] = []

    def visit(start: int, total: int) -> None:
        nonlocal best
        if target <= total <= target + dust:
            if best is None or len(partial) > len(best):
                best = tuple(partial)
        if total >= target:
            return
        for i in range(start, len(candidates)):
            partial.append(candidates[i])
            visit(i + 1, total + candidates[i].amount)
            partial.pop()

    visit(0, 0)
    return best


def plan_inputs(
    notes: Sequence[Note],
    target: int,
    dust_threshold: int,
    token: int | None = None,
    max_candidates: int = MAX_COMBINATION_CANDIDATES,
) -> SelectionResult:
    """
    Выбор нот под трату без strict-фильтра (чистая функция, Ledger не трогает).

    Raises:
        InvalidInput: target не положителен
        InsufficientFunds: Суммы всех нот не хватает
    """
    validate_positive_amount(target, "target")
    available = sum(note.amount for note in notes)
    if available < target:
        if token is None:
            token = notes[0].token if notes else 0
        raise InsufficientFunds(token, target, available)

    candidates = sorted(notes, key=lambda n: n.amount)

    combination = None
    if len(candidates) <= max_candidates:
        combination = _find_combination(candidates, target, dust_threshold)
    else:
        logger.debug(
            f"Skipping combination search: {len(candidates)} candidates > {max_candidates}"
        )

    if combination is not None:
        total = sum(note.amount for note in combination)
        return SelectionResult(
            notes=combination,
            target=target,
            refund=0,
            dust_absorbed=total - target,
            used_combination=True,
        )

    selected: list[Note] = []
    total = 0
    for note in reversed(candidates):
        selected.append(note)
        total += note.amount
        if total >= target:
            break

    return SelectionResult(
        notes=tuple(selected),
        target=target,
        refund=total - target,
        dust_absorbed=0,
        used_combination=False,
    )


def is_beneficial_split(result: SelectionResult, dust_threshold: int) -> bool:
    """Strict-фильтр реструктуризации."""
    if result.used_combination:
        return len(result.notes) > STRICT_MIN_COMBINATION_NOTES
    return result.refund >= dust_threshold


def select_inputs(
    notes: Sequence[Note],
    target: int,
    dust_threshold: int,
    strict: bool = False,
    token: int | None = None,
    max_candidates: int = MAX_COMBINATION_CANDIDATES,
) -> SelectionResult | None:
    """
    Выбор нот под трату (чистая функция, Ledger не трогает).

    Args:
        notes: Кандидаты (ноты одного токена)
        target: Сумма траты (> 0)
        dust_threshold: Допустимый излишек без создания сдачи
        strict: Режим реструктуризации
        token: Токен (для сообщения об ошибке)
        max_candidates: Порог пропуска полного перебора

    Returns:
        SelectionResult, либо None в strict-режиме если выгодного сплита нет

    Raises:
        InvalidInput: target не положителен
        InsufficientFunds: Суммы всех нот не хватает
    """
    result = plan_inputs(notes, target, dust_threshold, token, max_candidates)
    if strict and not is_beneficial_split(result, dust_threshold):
        return None
    return result


class CoinSelector:
    """
    Выбор нот из Ledger сессии.

    При успехе выбранные ноты удаляются из Ledger немедленно, до любого
    внешнего подтверждения.
    """

    def __init__(self, session: WalletSession):
        self.session = session

    def _plan(self, token: int, target: int) -> SelectionResult:
        config = self.session.config
        return plan_inputs(
            self.session.ledger.notes_for(token),
            target,
            config.dust_amount(token),
            token=token,
            max_candidates=config.max_combination_candidates,
        )

    def _take(self, token: int, result: SelectionResult) -> SelectionResult:
        keys = tuple(self.session.note_private_key(note) for note in result.notes)
        self.session.ledger.remove_notes(result.notes)

        logger.debug(
            f"Selected {len(result.notes)} notes of token {token}: "
            f"total={result.total} target={result.target} refund={result.refund}"
        )
        return replace(result, private_keys=keys)

    def select(self, token: int, target: int) -> SelectionResult:
        """
        Выбор и изъятие нот токена.

        Raises:
            InvalidInput: target не положителен
            InsufficientFunds: Нот не хватает (Ledger не меняется)
            InvalidAddress: Для выбранной ноты нет приватного ключа (Ledger не меняется)
        """
        return self._take(token, self._plan(token, target))

    def select_split(self, token: int, target: int) -> SelectionResult | None:
        """
        Выбор в strict-режиме для реструктуризации нот.

        Returns:
            SelectionResult, либо None если выгодного сплита нет (Ledger не меняется)
        """
        result = self._plan(token, target)
        if not is_beneficial_split(result, self.session.config.dust_amount(token)):
            logger.debug(f"No beneficial split for token {token}, target {target}")
            return None
        return self._take(token, result)
