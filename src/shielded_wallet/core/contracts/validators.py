"""
JSON Schema Contract Validators

Модуль для валидации исходящих сообщений согласно формальным JSON Schema контрактам
wire-формата сервиса расчётов. Использует библиотеку jsonschema.

Схемы (schema/*.json):
- common.json — общие определения (нота, точка, подпись, позиция, order tab)
- deposit.json, withdrawal.json
- limit_order.json, perp_order.json, liquidation_order.json
- margin_change.json, split_notes.json
- order_tab_open.json, order_tab_close.json, order_tab_modify.json
- mm_action.json

Ошибки валидации (jsonschema.ValidationError) пробрасываются без преобразования:
невалидное исходящее сообщение — ошибка программы, а не пользовательского ввода.
"""

import json
from pathlib import Path
from typing import Any, Dict

import jsonschema
from jsonschema import Draft202012Validator
from referencing import Registry, Resource

from shielded_wallet.core.domain.mm_actions import AddLiquidity, CloseMM, RegisterMM, RemoveLiquidity
from shielded_wallet.core.domain.orders import (
    Deposit,
    LimitOrder,
    LiquidationOrder,
    MarginChange,
    OrderTabClose,
    OrderTabModify,
    OrderTabOpen,
    PerpOrder,
    SignedMessage,
    SplitNotes,
    Withdrawal,
)


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    Загрузчик JSON Schema файлов.

    Схемы лежат в пакете (schema/ рядом с этим модулем). Все схемы регистрируются
    в общем Registry по их $id, поэтому ссылки вида "common.json#/$defs/note"
    разрешаются без сетевых запросов.
    """

    def __init__(self, schema_dir: Path | None = None):
        self._schema_dir = schema_dir or Path(__file__).parent / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        # Кэш загруженных схем
        self._schemas: Dict[str, Dict[str, Any]] = {}
        self._registry: Registry | None = None

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Загрузка JSON Schema файла.

        Args:
            schema_name: Имя схемы без расширения (например, 'deposit')

        Returns:
            Загруженная схема как dict

        Raises:
            FileNotFoundError: Если файл схемы не найден
            ValueError: Если схема не проходит meta-validation
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        # Валидируем саму схему (meta-validation)
        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}") from e

        self._schemas[schema_name] = schema
        return schema

    @property
    def registry(self) -> Registry:
        """Registry со всеми схемами каталога."""
        if self._registry is None:
            resources = []
            for path in sorted(self._schema_dir.glob("*.json")):
                schema = self.load_schema(path.stem)
                resources.append((schema["$id"], Resource.from_contents(schema)))
            self._registry = Registry().with_resources(resources)
        return self._registry


# Глобальный экземпляр загрузчика
_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """
    Базовый класс для валидаторов контрактов.

    Инкапсулирует логику валидации данных против JSON Schema.
    """

    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        self.schema = _SCHEMA_LOADER.load_schema(schema_name)
        self.validator = Draft202012Validator(self.schema, registry=_SCHEMA_LOADER.registry)

    def validate(self, data: Dict[str, Any]) -> None:
        """
        Валидация данных против схемы.

        Raises:
            ValidationError: Если данные не соответствуют схеме
        """
        self.validator.validate(data)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return self.validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]):
        """Итератор по всем ошибкам валидации."""
        return self.validator.iter_errors(data)


class DepositValidator(ContractValidator):
    def __init__(self):
        super().__init__("deposit")


class WithdrawalValidator(ContractValidator):
    def __init__(self):
        super().__init__("withdrawal")


class LimitOrderValidator(ContractValidator):
    def __init__(self):
        super().__init__("limit_order")


class PerpOrderValidator(ContractValidator):
    def __init__(self):
        super().__init__("perp_order")


class LiquidationOrderValidator(ContractValidator):
    def __init__(self):
        super().__init__("liquidation_order")


class MarginChangeValidator(ContractValidator):
    def __init__(self):
        super().__init__("margin_change")


class SplitNotesValidator(ContractValidator):
    def __init__(self):
        super().__init__("split_notes")


class OrderTabOpenValidator(ContractValidator):
    def __init__(self):
        super().__init__("order_tab_open")


class OrderTabCloseValidator(ContractValidator):
    def __init__(self):
        super().__init__("order_tab_close")


class OrderTabModifyValidator(ContractValidator):
    def __init__(self):
        super().__init__("order_tab_modify")


class MMActionValidator(ContractValidator):
    def __init__(self):
        super().__init__("mm_action")


# Тип сообщения → имя схемы
_MESSAGE_SCHEMAS: Dict[type, str] = {
    Deposit: "deposit",
    Withdrawal: "withdrawal",
    LimitOrder: "limit_order",
    PerpOrder: "perp_order",
    LiquidationOrder: "liquidation_order",
    MarginChange: "margin_change",
    SplitNotes: "split_notes",
    OrderTabOpen: "order_tab_open",
    OrderTabClose: "order_tab_close",
    OrderTabModify: "order_tab_modify",
    RegisterMM: "mm_action",
    AddLiquidity: "mm_action",
    RemoveLiquidity: "mm_action",
    CloseMM: "mm_action",
}


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def validate_deposit(data: Dict[str, Any]) -> None:
    """
    Валидация wire-формы Deposit.

    Raises:
        ValidationError: Если данные не соответствуют схеме
    """
    DepositValidator().validate(data)


def validate_withdrawal(data: Dict[str, Any]) -> None:
    WithdrawalValidator().validate(data)


def validate_limit_order(data: Dict[str, Any]) -> None:
    LimitOrderValidator().validate(data)


def validate_perp_order(data: Dict[str, Any]) -> None:
    PerpOrderValidator().validate(data)


def validate_liquidation_order(data: Dict[str, Any]) -> None:
    LiquidationOrderValidator().validate(data)


def validate_margin_change(data: Dict[str, Any]) -> None:
    MarginChangeValidator().validate(data)


def validate_split_notes(data: Dict[str, Any]) -> None:
    SplitNotesValidator().validate(data)


def validate_order_tab_open(data: Dict[str, Any]) -> None:
    OrderTabOpenValidator().validate(data)


def validate_order_tab_close(data: Dict[str, Any]) -> None:
    OrderTabCloseValidator().validate(data)


def validate_order_tab_modify(data: Dict[str, Any]) -> None:
    OrderTabModifyValidator().validate(data)


def validate_mm_action(data: Dict[str, Any]) -> None:
    MMActionValidator().validate(data)


def validate_message(message: SignedMessage) -> Dict[str, Any]:
    """
    Сериализация сообщения и проверка против его схемы.

    Args:
        message: Подписанное сообщение

    Returns:
        Wire-форма сообщения (dict), прошедшая валидацию

    Raises:
        KeyError: Если для типа сообщения нет схемы
        ValidationError: Если wire-форма не соответствует схеме
    """
    schema_name = _MESSAGE_SCHEMAS[type(message)]
    wire = message.to_wire()
    ContractValidator(schema_name).validate(wire)
    return wire
