# app/services/override_resolver.py
"""
Per-destination payload resolution.

Everything here is pure: no I/O, no clock, no mutation of inputs.

Resolution order for a variant's price on one destination:
    1. explicit override (a price of 0 counts)
    2. base price with the destination's price adjustment applied
"""

import hashlib
import json
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from app.core.enums import PriceAdjustmentType
from app.schemas.catalog import ProductData, VariantData
from app.schemas.sync import (
    DestinationSyncConfig,
    EffectivePayload,
    PriceAdjustment,
    ProductPayload,
    VariantOverride,
)

_HUNDRED = Decimal("100")


def _present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def apply_price_adjustment(price: Decimal, adjustment: Optional[PriceAdjustment]) -> Decimal:
    """
    Apply a destination-wide price rule to a base price.

    percentage/markup raise by ``value`` percent, markdown lowers by ``value``
    percent, fixed adds ``value`` (negative to subtract). The result is
    rounded half-up to ``round_to`` and never negative.
    """
    if adjustment is None or adjustment.type == PriceAdjustmentType.NONE:
        return price

    value = adjustment.value
    if adjustment.type in (PriceAdjustmentType.PERCENTAGE, PriceAdjustmentType.MARKUP):
        adjusted = price * (_HUNDRED + value) / _HUNDRED
    elif adjustment.type == PriceAdjustmentType.MARKDOWN:
        adjusted = price * (_HUNDRED - value) / _HUNDRED
    else:
        adjusted = price + value

    step = adjustment.round_to if adjustment.round_to > 0 else Decimal("0.01")
    rounded = (adjusted / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * step
    return max(Decimal("0"), rounded.quantize(Decimal("0.01")))


def resolve(
    variant: VariantData,
    override: Optional[VariantOverride] = None,
    adjustment: Optional[PriceAdjustment] = None,
) -> EffectivePayload:
    """Effective variant payload for one destination."""
    override = override or VariantOverride()

    if _present(override.price):
        price = override.price
    else:
        price = apply_price_adjustment(variant.price, adjustment)

    if _present(override.compare_at_price):
        compare_at_price = override.compare_at_price
    elif variant.compare_at_price is not None and adjustment is not None and adjustment.apply_to_compare_at:
        compare_at_price = apply_price_adjustment(variant.compare_at_price, adjustment)
    else:
        compare_at_price = variant.compare_at_price

    sku = override.sku if _present(override.sku) else variant.sku

    return EffectivePayload(
        variant_id=variant.id,
        title=variant.title,
        price=price,
        compare_at_price=compare_at_price,
        sku=sku,
        position=variant.position,
        option_values=variant.option_values,
    )


def merge(existing: Optional[VariantOverride], incoming: Optional[VariantOverride]) -> VariantOverride:
    """
    Combine a stored override with a newly submitted one.

    Only fields the caller actually set on ``incoming`` take effect, so an
    explicit ``None`` clears a stored override while an omitted field keeps it.
    """
    if existing is None:
        existing = VariantOverride()
    if incoming is None:
        return existing.model_copy()
    updates = {field: getattr(incoming, field) for field in incoming.model_fields_set}
    return existing.model_copy(update=updates)


def merge_overrides(
    existing: Dict[str, VariantOverride],
    incoming: Dict[str, VariantOverride],
) -> Dict[str, VariantOverride]:
    merged = {variant_id: override.model_copy() for variant_id, override in existing.items()}
    for variant_id, override in incoming.items():
        merged[variant_id] = merge(merged.get(variant_id), override)
    return merged


def build_product_payload(product: ProductData, config: DestinationSyncConfig) -> ProductPayload:
    """Full product payload for one destination, variants in catalog order."""
    title = "".join(part for part in (config.title_prefix, product.title, config.title_suffix) if part)
    tags: List[str] = list(dict.fromkeys([*product.tags, *config.extra_tags]))

    variants = [
        resolve(variant, config.variant_overrides.get(variant.id), config.price_adjustment)
        for variant in product.variants
    ]
    options = {option.name: list(option.values) for option in sorted(product.options, key=lambda o: o.position)}

    return ProductPayload(
        product_id=product.id,
        title=title,
        description=product.description,
        vendor=product.vendor,
        product_type=product.product_type,
        status=product.status.value,
        tags=tags,
        options=options,
        variants=variants,
        collection_ids=list(config.collection_ids),
    )


def payload_hash(payload: ProductPayload) -> str:
    """Stable digest of what was pushed; equal payloads hash equal."""
    body = json.dumps(payload.model_dump(mode="json"), sort_keys=True)
    return hashlib.sha256(body.encode()).hexdigest()

