"""
Errors — таксономия ошибок кошелька.

Правило распространения:
- Локальная валидация (InvalidInput, InvalidDirection, UnknownChainId, ...) выполняется
  ДО любой мутации Ledger и до любого сетевого вызова.
- InsufficientFunds поднимается CoinSelector и оставляет Ledger без изменений.
- RemoteRejected — явный отказ сервиса расчётов с текстом причины.
"""

from typing import Final

# Фрагменты причины отказа, означающие что сервис не знает о ноте
_MISSING_NOTE_MARKERS: Final[tuple[str, ...]] = (
    "note does not exist",
    "missing note",
    "unknown note",
)


class WalletError(Exception):
    """Базовая ошибка кошелька."""


class InvalidInput(WalletError):
    """Отсутствует или некорректно обязательное поле запроса."""


class InvalidKeyLength(InvalidInput):
    """Приватный ключ длиннее 240 бит."""


class InsufficientFunds(WalletError):
    """Суммы всех нот токена не хватает для покрытия запроса."""

    def __init__(self, token: int, requested: int, available: int):
        super().__init__(
            f"Insufficient funds for token {token}: requested {requested}, available {available}"
        )
        self.token = token
        self.requested = requested
        self.available = available


class InvalidCommitment(WalletError):
    """
    H2(amount, blinding) не совпадает с опубликованным commitment.

    Означает повреждённые или подделанные данные — никогда не игнорируется.
    """


class InvalidPositionOrTab(WalletError):
    """Позиция или order tab не найдены в Ledger."""


class InvalidAddress(WalletError):
    """Адрес не принадлежит кошельку (нет приватного ключа)."""


class InvalidDirection(WalletError):
    """Нераспознанное значение enum (сторона, направление, тип эффекта)."""


class UnknownChainId(WalletError):
    """Chain id, закодированный в deposit id, не входит в allow-list."""

    def __init__(self, chain_id: int):
        super().__init__(f"Unknown chain id {chain_id}")
        self.chain_id = chain_id


class RemoteRejected(WalletError):
    """Сервис расчётов явно отклонил запрос."""

    def __init__(self, operation: str, reason: str):
        super().__init__(f"{operation} failed with error: {reason}")
        self.operation = operation
        self.reason = reason

    @property
    def is_missing_note(self) -> bool:
        """True если причина указывает на отсутствующую/неизвестную ноту."""
        reason = self.reason.lower()
        return any(marker in reason for marker in _MISSING_NOTE_MARKERS)
