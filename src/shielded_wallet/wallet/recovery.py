"""KeyRecovery — повторное обнаружение ключей после потери локального состояния.

Для каждого токена перебираются все window кандидатных адресов вида
(kind, token, counter), counter ∈ [0, window). Проверки существования в
хранилище для одного токена выполняются конкурентно и объединяются барьером;
только после барьера обновляются карты ключей и счётчики.

Отмена скана (или ошибка одной проверки) отменяет все незавершённые проверки.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable

from shielded_wallet.core.crypto.key_derivation import KeyKind
from shielded_wallet.wallet.collaborators import StateStore
from shielded_wallet.wallet.session import WalletSession

logger = logging.getLogger(__name__)


@dataclass
class RecoveryResult:
    """Ключи, найденные сканом одного типа сущностей."""

    kind: KeyKind
    # token -> найденные значения счётчика
    counters: dict[int, list[int]] = field(default_factory=dict)
    # address.x -> приватный скаляр
    keys: dict[int, int] = field(default_factory=dict)

    @property
    def found(self) -> int:
        return len(self.keys)


class KeyRecovery:
    """Скан кандидатных адресов против StateStore."""

    def __init__(self, session: WalletSession, store: StateStore):
        self.session = session
        self.store = store

    async def recover(self, kind: KeyKind, tokens: Iterable[int] | None = None) -> RecoveryResult:
        """
        Скан всех токенов для типа kind.

        Найденные ключи добавляются в карту ключей сессии (существующие записи
        сохраняются); счётчик токена становится (max найденный + 1) % window,
        либо 0 если ничего не найдено.

        Args:
            kind: Тип сущности (note / position / order_tab)
            tokens: Токены для скана (по умолчанию config.scan_tokens)

        Returns:
            RecoveryResult
        """
        tokens = tuple(tokens) if tokens is not None else self.session.config.scan_tokens
        result = RecoveryResult(kind=kind)
        logger.warning(f"Starting {kind.value} key recovery over {len(tokens)} tokens")

        for token in tokens:
            found = await self._scan_token(kind, token)
            key_map = self.session.key_map(kind)
            for counter, (address_x, private_key) in sorted(found.items()):
                key_map[address_x] = private_key
                result.keys[address_x] = private_key
            counters = sorted(found)
            if counters:
                result.counters[token] = counters
            window = self.session.window(kind)
            self.session.counters(kind)[token] = (counters[-1] + 1) % window if counters else 0

        logger.info(f"Recovered {result.found} {kind.value} keys")
        return result

    async def _scan_token(self, kind: KeyKind, token: int) -> dict[int, tuple[int, int]]:
        """counter -> (address.x, private_key) для существующих адресов."""
        candidates = []
        for counter in range(self.session.window(kind)):
            private_key = self.session.candidate_key(kind, token, counter)
            address = self.session.derivation.address_of(private_key)
            candidates.append((counter, address.x, private_key))

        tasks = [
            asyncio.create_task(self.store.exists(kind, address_x))
            for _, address_x, _ in candidates
        ]
        try:
            exists = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return {
            counter: (address_x, private_key)
            for (counter, address_x, private_key), hit in zip(candidates, exists)
            if hit
        }
