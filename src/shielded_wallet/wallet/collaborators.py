"""
Collaborators — интерфейсы внешних систем кошелька.

- SettlementService: сервис расчётов (submit / cancel / amend / get_orders)
- StateStore: хранилище нот, позиций и tabs по производному адресу
- KeyCache: локальный durable-кэш ключевого материала по user_id

Транспорт, ретраи и таймауты — ответственность реализаций.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from pydantic import BaseModel, Field

from shielded_wallet.core.crypto.key_derivation import KeyKind
from shielded_wallet.errors import InvalidInput

logger = logging.getLogger(__name__)


# =============================================================================
# SETTLEMENT SERVICE
# =============================================================================


class SettlementResponse(BaseModel):
    """Ответ сервиса расчётов на submit / cancel / amend."""

    successful: bool
    error_message: str | None = Field(None, description="Причина отказа")
    order_id: int | None = Field(None, ge=0, description="Id принятого ордера")
    payload: dict[str, Any] = Field(default_factory=dict, description="Доп. данные ответа")

    model_config = {"frozen": True}


class SettlementService(Protocol):
    async def submit(self, operation: str, payload: Mapping[str, Any]) -> SettlementResponse:
        ...

    async def cancel_order(
        self, order_id: int, is_perp: bool, user_id: int
    ) -> SettlementResponse:
        ...

    async def amend_order(self, payload: Mapping[str, Any]) -> SettlementResponse:
        ...

    async def get_orders(
        self, order_ids: Sequence[int], perp_order_ids: Sequence[int]
    ) -> Mapping[str, Any]:
        """Активные ордера по спискам id (сырой снимок для ActiveOrdersSnapshot)."""
        ...


# =============================================================================
# STATE STORE
# =============================================================================


class StateStore(Protocol):
    """
    Хранилище состояния биржи.

    fetch_notes возвращает записи {address, token, index, hidden_amount, commitment};
    fetch_order_tabs — {tab_idx, tab_header, base_hidden_amount, base_commitment,
    quote_hidden_amount, quote_commitment}; fetch_positions — wire-форму позиций.
    """

    async def fetch_notes(self, address_x: int, blinding: int) -> list[Mapping[str, Any]]:
        ...

    async def fetch_positions(self, address_x: int) -> list[Mapping[str, Any]]:
        ...

    async def fetch_order_tabs(self, address_x: int) -> list[Mapping[str, Any]]:
        ...

    async def exists(self, kind: KeyKind, address_x: int) -> bool:
        ...


# =============================================================================
# KEY CACHE
# =============================================================================


def _int_keys(data: Mapping[Any, Any]) -> dict[int, int]:
    return {int(k): int(v) for k, v in data.items()}


@dataclass
class CachedKeyState:
    """
    Ключевой материал сессии между запусками.

    Хранятся только приватные скаляры: адреса выводятся из них заново.
    """

    note_keys: list[int] = field(default_factory=list)
    position_keys: list[int] = field(default_factory=list)
    tab_keys: list[int] = field(default_factory=list)
    order_ids: list[int] = field(default_factory=list)
    perp_order_ids: list[int] = field(default_factory=list)
    note_counts: dict[int, int] = field(default_factory=dict)
    position_counts: dict[int, int] = field(default_factory=dict)
    tab_counts: dict[int, int] = field(default_factory=dict)

    def to_mapping(self) -> dict[str, Any]:
        """JSON-совместимая форма (широкие числа — десятичные строки)."""
        return {
            "note_keys": [str(k) for k in self.note_keys],
            "position_keys": [str(k) for k in self.position_keys],
            "tab_keys": [str(k) for k in self.tab_keys],
            "order_ids": list(self.order_ids),
            "perp_order_ids": list(self.perp_order_ids),
            "note_counts": {str(t): c for t, c in self.note_counts.items()},
            "position_counts": {str(t): c for t, c in self.position_counts.items()},
            "tab_counts": {str(t): c for t, c in self.tab_counts.items()},
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CachedKeyState":
        """
        Raises:
            InvalidInput: Повреждённая запись кэша
        """
        try:
            return cls(
                note_keys=[int(k) for k in data.get("note_keys", ())],
                position_keys=[int(k) for k in data.get("position_keys", ())],
                tab_keys=[int(k) for k in data.get("tab_keys", ())],
                order_ids=[int(i) for i in data.get("order_ids", ())],
                perp_order_ids=[int(i) for i in data.get("perp_order_ids", ())],
                note_counts=_int_keys(data.get("note_counts", {})),
                position_counts=_int_keys(data.get("position_counts", {})),
                tab_counts=_int_keys(data.get("tab_counts", {})),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidInput(f"Corrupted key cache entry: {e}") from e


class KeyCache(Protocol):
    def load(self, user_id: int) -> CachedKeyState | None:
        ...

    def store(self, user_id: int, state: CachedKeyState) -> None:
        ...


class JsonFileKeyCache:
    """
    KeyCache поверх каталога JSON-файлов (один файл на пользователя).

    Args:
        directory: Каталог кэша (создаётся при первой записи)
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def _path(self, user_id: int) -> Path:
        return self.directory / f"{user_id}.json"

    def load(self, user_id: int) -> CachedKeyState | None:
        path = self._path(user_id)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return CachedKeyState.from_mapping(data)

    def store(self, user_id: int, state: CachedKeyState) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(user_id)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(state.to_mapping(), f)
        tmp_path.replace(path)
        logger.debug(f"Stored key cache for user {str(user_id)[:8]}…")
