# offers/services/settings_editor.py

"""
MANAGER EDITS OF THE SETTINGS DOCUMENT

A PATCH replaces configuration, never usage:
- top-level counters are ignored in the patch
- rule rows matched by id keep their live counters / customer lists
- new rows start from zero

The patch is merged inside the compare-and-swap attempt, so counter
increments made by bills between the manager's read and write survive.

If the random-campaign configuration changed (or a redraw was requested)
a fresh draw runs after the write.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from offers.services.concurrency import update_settings_with_retry
from offers.services.random_assignment import config_signature, draw_random_offer_winners
from offers.services.settings_repository import (
    RewardSettings,
    load_reward_settings,
    normalize_reward_settings,
    settings_to_document,
)

logger = logging.getLogger(__name__)

ENGINE_OWNED_FIELDS = (
    "random_customer_offer_assigned_count",
    "random_customer_offer_redeemed_count",
    "random_customer_offer_last_assigned_at",
    "total_percentage_offer_given_count",
    "total_percentage_offer_customer_count",
    "total_percentage_offer_customers",
)

COUNTED_ROW_FIELDS = ("offer_given_count", "offer_customer_count", "offer_customers")
RANDOM_ROW_FIELDS = ("assigned_count", "redeemed_count", "selected_customers")


def _keep_row_usage(new_rows, current_rows, usage_fields):
    by_id = {row.id: row for row in current_rows}
    out = []
    for row in new_rows:
        existing = by_id.get(row.id)
        if existing is None:
            out.append(replace(row, **{name: _empty(getattr(row, name)) for name in usage_fields}))
        else:
            out.append(replace(row, **{name: getattr(existing, name) for name in usage_fields}))
    return tuple(out)


def _empty(value):
    return () if isinstance(value, tuple) else 0


def merge_settings_patch(current: RewardSettings, patch: dict) -> RewardSettings:
    document = settings_to_document(current)
    for key, value in patch.items():
        if key in document and key not in ENGINE_OWNED_FIELDS:
            document[key] = value

    merged = normalize_reward_settings(document)

    return replace(
        merged,
        product_to_product_offers=_keep_row_usage(
            merged.product_to_product_offers,
            current.product_to_product_offers,
            COUNTED_ROW_FIELDS,
        ),
        product_price_offers=_keep_row_usage(
            merged.product_price_offers,
            current.product_price_offers,
            COUNTED_ROW_FIELDS,
        ),
        random_customer_offer_products=_keep_row_usage(
            merged.random_customer_offer_products,
            current.random_customer_offer_products,
            RANDOM_ROW_FIELDS,
        ),
    )


def apply_settings_patch(patch: dict, *, reselect_random: bool = False) -> RewardSettings:
    before = config_signature(load_reward_settings())

    written = update_settings_with_retry(lambda current: merge_settings_patch(current, patch))

    if reselect_random or config_signature(written) != before:
        logger.info(
            "Random offer configuration changed; redrawing",
            extra={"campaign_code": written.random_customer_offer_campaign_code},
        )
        draw_random_offer_winners()
        return load_reward_settings()

    return written
