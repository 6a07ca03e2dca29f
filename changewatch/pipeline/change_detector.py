"""Change detection for a product's competitor set.

The competitor ids are canonicalized (de-duplicated, sorted ascending) and
fingerprinted with SHA-256. When the fingerprint differs from the stored
one, added/removed counts come from a two-cursor merge over both sorted
lists. Canonicalization must happen before the merge: unsorted input
yields wrong counts without any error.
"""

import hashlib
import logging
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel

from changewatch.api.schemas import CatalogProduct, ProductOutcome, ProductSnapshot, ProductStatus
from changewatch.errors import InvalidProductKey, StoreError

logger = logging.getLogger(__name__)


class Action(str, Enum):
    CREATE = "create"
    TOUCH = "touch"
    UPDATE = "update"


class ChangeDecision(BaseModel):
    """What evaluate() decided and the snapshot to persist."""
    action: Action
    added: int = 0
    removed: int = 0
    changed: bool = False
    snapshot: ProductSnapshot


def canonicalize(ids: Iterable[str]) -> List[str]:
    """Sort and de-duplicate competitor ids."""
    return sorted(set(ids))


def competitors_hash(sorted_ids: List[str]) -> str:
    """SHA-256 hex digest of the ids concatenated without separator."""
    return hashlib.sha256("".join(sorted_ids).encode("utf-8")).hexdigest()


def merge_diff(old: List[str], current: List[str]) -> Tuple[int, int]:
    """Count ids unique to each of two strictly sorted lists.

    Returns (added, removed): added are ids only in current, removed are
    ids only in old.
    """
    added = 0
    removed = 0
    i = 0
    j = 0
    while i < len(old) and j < len(current):
        if old[i] < current[j]:
            removed += 1
            i += 1
        elif old[i] > current[j]:
            added += 1
            j += 1
        else:
            i += 1
            j += 1

    removed += len(old) - i
    added += len(current) - j
    return added, removed


def evaluate(
    product_id: str,
    current: Iterable[str],
    prior: Optional[ProductSnapshot],
    now: datetime,
) -> ChangeDecision:
    """Compare the current competitor set with the stored snapshot.

    Pure: computes the decision and the resulting snapshot, writes nothing.
    """
    ids = canonicalize(current)
    digest = competitors_hash(ids)

    if prior is None:
        return ChangeDecision(
            action=Action.CREATE,
            added=len(ids),
            removed=0,
            changed=True,
            snapshot=ProductSnapshot(
                id=product_id,
                competitors_hash=digest,
                competitors=ids,
                last_checked=now,
                last_changed=now,
            ),
        )

    # last_checked never goes backwards, even if the clock does
    if now < prior.last_checked:
        now = prior.last_checked

    if digest == prior.competitors_hash:
        return ChangeDecision(
            action=Action.TOUCH,
            snapshot=prior.model_copy(update={"last_checked": now}),
        )

    added, removed = merge_diff(canonicalize(prior.competitors), ids)
    return ChangeDecision(
        action=Action.UPDATE,
        added=added,
        removed=removed,
        changed=True,
        snapshot=ProductSnapshot(
            id=product_id,
            competitors_hash=digest,
            competitors=ids,
            last_checked=now,
            last_changed=now,
        ),
    )


async def check_product(store, product: CatalogProduct, now: datetime) -> ProductOutcome:
    """Run change detection for one product and persist the result.

    Per-product problems become SKIPPED or FAILED outcomes with zero
    counts; nothing is raised to the caller.
    """
    try:
        key = store.parse_key(product.oid)
    except InvalidProductKey as e:
        logger.warning("Skipping product %r: %s", product.oid, e)
        return ProductOutcome(product_id=product.oid, status=ProductStatus.SKIPPED, reason=str(e))

    try:
        prior = await store.get(key)
    except StoreError as e:
        logger.error("Failed to read snapshot for %s: %s", key, e)
        return ProductOutcome(product_id=key, status=ProductStatus.FAILED, reason=str(e))

    decision = evaluate(key, product.competitor_ids(), prior, now)

    try:
        if decision.action is Action.TOUCH:
            await store.mark_checked(key, decision.snapshot.last_checked)
        else:
            await store.upsert(decision.snapshot)
    except StoreError as e:
        logger.error("Failed to write snapshot for %s: %s", key, e)
        return ProductOutcome(product_id=key, status=ProductStatus.FAILED, reason=str(e))

    if decision.action is Action.CREATE:
        status = ProductStatus.CREATED
        logger.debug("Product %s seen for the first time", key)
    elif decision.action is Action.UPDATE:
        status = ProductStatus.UPDATED
        logger.info("Product %s has been changed (+%d/-%d)", key, decision.added, decision.removed)
    else:
        status = ProductStatus.UNCHANGED

    return ProductOutcome(
        product_id=key,
        status=status,
        added=decision.added,
        removed=decision.removed,
        changed=decision.changed,
    )
