# Overview: Server-side shipping fee policy.

from __future__ import annotations

from .tier_service import TierBenefit


def calculate_shipping_fee(benefit: TierBenefit, amount_after_discount: int, base_fee: int) -> int:
    """
    Free when the tier always ships free or the discounted amount reaches
    the tier threshold; otherwise the flat base fee.

    Client-supplied fees are never consulted.
    """
    if benefit.always_free_shipping:
        return 0
    if amount_after_discount >= benefit.free_shipping_threshold:
        return 0
    return base_fee
