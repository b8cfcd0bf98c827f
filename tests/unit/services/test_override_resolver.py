# tests/unit/services/test_override_resolver.py
from decimal import Decimal

import pytest

from app.core.enums import PriceAdjustmentType
from app.schemas.catalog import VariantData
from app.schemas.sync import DestinationSyncConfig, PriceAdjustment, VariantOverride
from app.services.override_resolver import (
    apply_price_adjustment,
    build_product_payload,
    merge,
    merge_overrides,
    payload_hash,
    resolve,
)
from tests.conftest import make_product

BASE = VariantData(
    id="v1",
    title="Default",
    price=Decimal("100.00"),
    compare_at_price=Decimal("120.00"),
    sku="BASE-SKU",
    inventory_quantity=3,
)


@pytest.mark.parametrize(
    "override, expected_price, expected_compare, expected_sku",
    [
        (None, Decimal("100.00"), Decimal("120.00"), "BASE-SKU"),
        (VariantOverride(), Decimal("100.00"), Decimal("120.00"), "BASE-SKU"),
        (VariantOverride(price=Decimal("89.99")), Decimal("89.99"), Decimal("120.00"), "BASE-SKU"),
        (VariantOverride(price=Decimal("0")), Decimal("0"), Decimal("120.00"), "BASE-SKU"),
        (VariantOverride(compare_at_price=Decimal("0")), Decimal("100.00"), Decimal("0"), "BASE-SKU"),
        (VariantOverride(sku=""), Decimal("100.00"), Decimal("120.00"), "BASE-SKU"),
        (VariantOverride(sku="   "), Decimal("100.00"), Decimal("120.00"), "BASE-SKU"),
        (VariantOverride(sku="STORE-B"), Decimal("100.00"), Decimal("120.00"), "STORE-B"),
    ],
)
def test_resolve_field_by_field(override, expected_price, expected_compare, expected_sku):
    effective = resolve(BASE, override)

    assert effective.price == expected_price
    assert effective.compare_at_price == expected_compare
    assert effective.sku == expected_sku
    assert effective.variant_id == "v1"


def test_resolve_does_not_mutate_inputs():
    override = VariantOverride(price=Decimal("5"))
    resolve(BASE, override)

    assert BASE.price == Decimal("100.00")
    assert override.price == Decimal("5")


@pytest.mark.parametrize(
    "kind, value, round_to, expected",
    [
        (PriceAdjustmentType.NONE, "10", "0.01", "100.00"),
        (PriceAdjustmentType.PERCENTAGE, "10", "0.01", "110.00"),
        (PriceAdjustmentType.MARKUP, "12.5", "0.01", "112.50"),
        (PriceAdjustmentType.MARKDOWN, "25", "0.01", "75.00"),
        (PriceAdjustmentType.FIXED, "-5.5", "0.01", "94.50"),
        (PriceAdjustmentType.FIXED, "-500", "0.01", "0.00"),
        (PriceAdjustmentType.PERCENTAGE, "3", "1", "103.00"),
        (PriceAdjustmentType.MARKUP, "7", "5", "105.00"),
    ],
)
def test_price_adjustments(kind, value, round_to, expected):
    adjustment = PriceAdjustment(type=kind, value=Decimal(value), round_to=Decimal(round_to))

    assert apply_price_adjustment(Decimal("100.00"), adjustment) == Decimal(expected)


def test_override_wins_over_adjustment():
    adjustment = PriceAdjustment(type=PriceAdjustmentType.PERCENTAGE, value=Decimal("50"))

    effective = resolve(BASE, VariantOverride(price=Decimal("42")), adjustment)

    assert effective.price == Decimal("42")
    assert effective.compare_at_price == Decimal("180.00")


def test_adjustment_can_skip_compare_at():
    adjustment = PriceAdjustment(
        type=PriceAdjustmentType.PERCENTAGE, value=Decimal("50"), apply_to_compare_at=False
    )

    effective = resolve(BASE, None, adjustment)

    assert effective.price == Decimal("150.00")
    assert effective.compare_at_price == Decimal("120.00")


def test_merge_keeps_unset_fields():
    existing = VariantOverride(price=Decimal("10"), sku="A")

    merged = merge(existing, VariantOverride(sku="B"))

    assert merged.price == Decimal("10")
    assert merged.sku == "B"


def test_merge_explicit_none_clears_field():
    existing = VariantOverride(price=Decimal("10"), sku="A")

    merged = merge(existing, VariantOverride.model_validate({"price": None}))

    assert merged.price is None
    assert merged.sku == "A"


def test_merge_with_nothing_incoming_is_a_copy():
    existing = VariantOverride(price=Decimal("10"))

    merged = merge(existing, None)

    assert merged == existing
    assert merged is not existing


def test_merge_overrides_by_variant():
    existing = {"v1": VariantOverride(price=Decimal("1")), "v2": VariantOverride(sku="X")}
    incoming = {"v2": VariantOverride(price=Decimal("2")), "v3": VariantOverride(sku="Y")}

    merged = merge_overrides(existing, incoming)

    assert merged["v1"].price == Decimal("1")
    assert merged["v2"].price == Decimal("2") and merged["v2"].sku == "X"
    assert merged["v3"].sku == "Y"
    assert existing["v2"].price is None


def test_build_product_payload_applies_config():
    product = make_product("p1")
    config = DestinationSyncConfig(
        title_prefix="[EU] ",
        extra_tags=["eu", "test"],
        collection_ids=["gid://shopify/Collection/1"],
        variant_overrides={"p1-v2": VariantOverride(price=Decimal("0"))},
    )

    payload = build_product_payload(product, config)

    assert payload.title == "[EU] Test Guitar p1"
    assert payload.tags == ["test", "eu"]
    assert payload.options == {"Size": ["S", "M"]}
    assert [v.variant_id for v in payload.variants] == ["p1-v1", "p1-v2"]
    assert payload.variants[0].price == Decimal("10.00")
    assert payload.variants[1].price == Decimal("0")
    assert payload.collection_ids == ["gid://shopify/Collection/1"]


def test_payload_hash_is_stable_and_sensitive():
    product = make_product("p1")
    first = build_product_payload(product, DestinationSyncConfig())
    second = build_product_payload(product, DestinationSyncConfig())
    changed = build_product_payload(product, DestinationSyncConfig(title_suffix=" (used)"))

    assert payload_hash(first) == payload_hash(second)
    assert payload_hash(first) != payload_hash(changed)
