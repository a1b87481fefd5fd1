"""
WalletConfig — конфигурация ядра кошелька.

Неизменяемый конфиг с дефолтами из production-окружения биржи.
Передаётся явно в конструкторы (WalletSession, CoinSelector, OrderBuilder, ...).
Загрузка файлов — ответственность вызывающего кода, здесь только from_mapping().
"""

from dataclasses import dataclass, field, fields
from typing import Any, Final, Mapping

from shielded_wallet.errors import InvalidInput

# =============================================================================
# ДЕФОЛТЫ
# =============================================================================

# Dust-порог на токен (≈ 5 центов)
DEFAULT_DUST_AMOUNT_PER_ASSET: Final[dict[int, int]] = {
    12345: 2500,  # BTC
    54321: 25000,  # ETH
    55555: 50000,  # USDC
}

DEFAULT_COLLATERAL_TOKEN: Final[int] = 55555

# market_id -> (base_token, quote_token)
DEFAULT_SPOT_MARKETS: Final[dict[int, tuple[int, int]]] = {
    11: (12345, 55555),
    12: (54321, 55555),
}

DEFAULT_CHAIN_IDS: Final[dict[str, int]] = {
    "ETH Mainnet": 9090909,
    "Starknet": 7878787,
    "ZkSync": 5656565,
}

NOTE_COUNTER_WINDOW: Final[int] = 32
POSITION_COUNTER_WINDOW: Final[int] = 16
TAB_COUNTER_WINDOW: Final[int] = 16

# Выше этого числа нот полный перебор комбинаций не запускается
MAX_COMBINATION_CANDIDATES: Final[int] = 24


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class WalletConfig:
    """Конфигурация кошелька."""

    dust_amount_per_asset: Mapping[int, int] = field(
        default_factory=lambda: dict(DEFAULT_DUST_AMOUNT_PER_ASSET)
    )
    default_dust_amount: int = 0
    collateral_token: int = DEFAULT_COLLATERAL_TOKEN
    spot_markets: Mapping[int, tuple[int, int]] = field(
        default_factory=lambda: dict(DEFAULT_SPOT_MARKETS)
    )
    chain_ids: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_CHAIN_IDS))

    # Окна счётчиков адресов (counter wrap)
    note_counter_window: int = NOTE_COUNTER_WINDOW
    position_counter_window: int = POSITION_COUNTER_WINDOW
    tab_counter_window: int = TAB_COUNTER_WINDOW

    max_combination_candidates: int = MAX_COMBINATION_CANDIDATES

    # Токены для recovery scan (None → ключи dust_amount_per_asset)
    tokens: tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        for name in ("note_counter_window", "position_counter_window", "tab_counter_window"):
            if getattr(self, name) <= 0:
                raise InvalidInput(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_combination_candidates < 0:
            raise InvalidInput(
                f"max_combination_candidates must be non-negative, got {self.max_combination_candidates}"
            )
        for token, dust in self.dust_amount_per_asset.items():
            if dust < 0:
                raise InvalidInput(f"dust amount for token {token} cannot be negative")

    def dust_amount(self, token: int) -> int:
        """Dust-порог токена (default_dust_amount если токен не сконфигурирован)."""
        return self.dust_amount_per_asset.get(token, self.default_dust_amount)

    def market_tokens(self, market_id: int) -> tuple[int, int]:
        """
        (base_token, quote_token) спот-рынка.

        Raises:
            InvalidInput: Если market_id неизвестен
        """
        try:
            base, quote = self.spot_markets[market_id]
        except KeyError:
            raise InvalidInput(f"Unknown spot market id {market_id}") from None
        return base, quote

    def is_known_chain(self, chain_id: int) -> bool:
        return chain_id in self.chain_ids.values()

    @property
    def scan_tokens(self) -> tuple[int, ...]:
        if self.tokens is not None:
            return tuple(self.tokens)
        return tuple(self.dust_amount_per_asset.keys())

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WalletConfig":
        """
        Построение конфига из plain mapping (например, распарсенного JSON).

        Ключи JSON-объектов всегда строки, поэтому token/market id приводятся к int.

        Raises:
            InvalidInput: Неизвестный ключ или некорректное значение
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidInput(f"Unknown config keys: {sorted(unknown)}")

        kwargs: dict[str, Any] = dict(data)
        try:
            if "dust_amount_per_asset" in kwargs:
                kwargs["dust_amount_per_asset"] = {
                    int(k): int(v) for k, v in kwargs["dust_amount_per_asset"].items()
                }
            if "spot_markets" in kwargs:
                kwargs["spot_markets"] = {
                    int(k): (int(v[0]), int(v[1])) for k, v in kwargs["spot_markets"].items()
                }
            if "chain_ids" in kwargs:
                kwargs["chain_ids"] = {str(k): int(v) for k, v in kwargs["chain_ids"].items()}
            if kwargs.get("tokens") is not None:
                kwargs["tokens"] = tuple(int(t) for t in kwargs["tokens"])
        except (TypeError, ValueError, IndexError) as e:
            raise InvalidInput(f"Invalid config value: {e}") from e

        return cls(**kwargs)
