"""
Тесты JSON Schema контрактов wire-формата

- Валидность самих схем (meta-validation) и разрешение $ref через Registry
- Валидация wire-форм собранных сообщений
- Детекция нарушений required полей, типов и паттернов
"""

import json
from pathlib import Path

import pytest
from jsonschema import Draft202012Validator, ValidationError

from shielded_wallet.core.contracts import (
    ContractValidator,
    DepositValidator,
    SchemaLoader,
    validate_deposit,
    validate_message,
    validate_perp_order,
    validate_withdrawal,
)
from shielded_wallet.wallet.order_builder import OrderBuilder

BTC = 12345
USDC = 55555
ETH_MAINNET = 9090909

SCHEMA_DIR = (
    Path(__file__).resolve().parents[2] / "src" / "shielded_wallet" / "core" / "contracts" / "schema"
)
SCHEMA_NAMES = sorted(p.stem for p in SCHEMA_DIR.glob("*.json"))


@pytest.fixture
def builder(session):
    return OrderBuilder(session)


@pytest.fixture
def deposit_wire(builder):
    return builder.deposit((ETH_MAINNET << 32) + 5, BTC, 10_000).to_wire()


@pytest.fixture
def withdrawal_wire(builder, fund):
    fund(BTC, [30_000])
    return builder.withdrawal(BTC, 10_000, recipient=4242, chain_id=ETH_MAINNET).to_wire()


# =============================================================================
# ТЕСТЫ: Схемы
# =============================================================================


class TestSchemas:
    def test_schema_dir_is_complete(self):
        assert {"common", "deposit", "withdrawal", "limit_order", "perp_order", "mm_action"} <= set(
            SCHEMA_NAMES
        )

    @pytest.mark.parametrize("name", SCHEMA_NAMES)
    def test_meta_validation(self, name):
        schema = json.loads((SCHEMA_DIR / f"{name}.json").read_text(encoding="utf-8"))
        Draft202012Validator.check_schema(schema)
        assert schema["$id"].endswith(f"/{name}.json")

    def test_loader_caches(self):
        loader = SchemaLoader()
        assert loader.load_schema("deposit") is loader.load_schema("deposit")

    def test_unknown_schema(self):
        with pytest.raises(FileNotFoundError):
            SchemaLoader().load_schema("no_such_contract")

    def test_missing_schema_dir(self, tmp_path):
        with pytest.raises(RuntimeError):
            SchemaLoader(tmp_path / "absent")

    def test_registry_resolves_common_refs(self):
        registry = SchemaLoader().registry
        resolved = registry.resolver().lookup(
            "https://shielded-wallet.local/schema/common.json#/$defs/decimal"
        )
        assert resolved.contents == {"type": "string", "pattern": "^[0-9]+$"}


# =============================================================================
# ТЕСТЫ: Валидация сообщений
# =============================================================================


class TestDepositContract:
    def test_valid(self, deposit_wire):
        validate_deposit(deposit_wire)
        assert DepositValidator().is_valid(deposit_wire)

    def test_missing_signature(self, deposit_wire):
        del deposit_wire["signature"]
        with pytest.raises(ValidationError, match="signature"):
            validate_deposit(deposit_wire)

    def test_amount_must_be_decimal_string(self, deposit_wire):
        deposit_wire["deposit_amount"] = 10_000
        with pytest.raises(ValidationError):
            validate_deposit(deposit_wire)

    def test_negative_decimal_rejected(self, deposit_wire):
        deposit_wire["deposit_amount"] = "-1"
        assert not DepositValidator().is_valid(deposit_wire)

    def test_extra_field_rejected(self, deposit_wire):
        deposit_wire["memo"] = "hello"
        assert not DepositValidator().is_valid(deposit_wire)

    def test_iter_errors_reports_all(self, deposit_wire):
        del deposit_wire["signature"]
        deposit_wire["deposit_token"] = "BTC"
        errors = list(DepositValidator().iter_errors(deposit_wire))
        assert len(errors) == 2


class TestWithdrawalContract:
    def test_valid(self, withdrawal_wire):
        validate_withdrawal(withdrawal_wire)
        assert withdrawal_wire["refund_note"]["amount"] == "20000"

    def test_note_requires_address(self, withdrawal_wire):
        del withdrawal_wire["notes_in"][0]["address"]
        with pytest.raises(ValidationError):
            validate_withdrawal(withdrawal_wire)

    def test_empty_inputs_rejected(self, withdrawal_wire):
        withdrawal_wire["notes_in"] = []
        with pytest.raises(ValidationError):
            validate_withdrawal(withdrawal_wire)

    def test_wrong_schema(self, withdrawal_wire):
        assert not ContractValidator("deposit").is_valid(withdrawal_wire)


class TestPerpOrderContract:
    def test_open_order(self, builder, fund):
        fund(USDC, [2_000_000])
        order = builder.perp_order(
            expiration=1_700_000_000,
            position_effect_type="Open",
            order_side="Short",
            synthetic_token=BTC,
            synthetic_amount=1_000,
            collateral_amount=30_000_000,
            fee_limit=10,
            initial_margin=1_500_000,
        )
        wire = validate_message(order)
        assert wire["position"] is None
        assert wire["close_order_fields"] is None
        assert wire["order_side"] is False

    def test_unknown_effect_type(self, builder, fund):
        fund(USDC, [2_000_000])
        wire = builder.perp_order(
            expiration=1_700_000_000,
            position_effect_type="Open",
            order_side="Long",
            synthetic_token=BTC,
            synthetic_amount=1_000,
            collateral_amount=30_000_000,
            fee_limit=10,
            initial_margin=1_500_000,
        ).to_wire()
        wire["position_effect_type"] = 3
        with pytest.raises(ValidationError):
            validate_perp_order(wire)
