# Overview: Maps a line item to exactly one stock record for a tenant.

from __future__ import annotations

from dataclasses import dataclass

from ..models import Product, ProductVariant
from .line_items import LineItem


@dataclass
class Resolution:
    product: Product | None = None
    variant: ProductVariant | None = None

    @property
    def found(self) -> bool:
        return self.product is not None

    @property
    def target(self):
        """The row whose quantity moves: the variant when present, else the product."""
        return self.variant if self.variant is not None else self.product

    @property
    def key(self) -> tuple | None:
        if self.variant is not None:
            return ("variant", self.variant.id)
        if self.product is not None:
            return ("product", self.product.id)
        return None


def resolve(repo, tenant_id: int, line: LineItem, *, lock: bool = False, active_only: bool = False) -> Resolution:
    """
    Resolve a line to a variant or product. Pure lookup, never creates.

    ORDER:
    1. variant id, scoped through the parent product's tenant; a stale or
       foreign variant id falls through to the next step
    2. product id, scoped to tenant
    3. case-insensitive exact name, scoped to tenant

    active_only treats inactive rows as missing (order validation uses it).
    Returns an empty Resolution when nothing matches.
    """
    if line.variant_id is not None:
        variant = repo.get_variant(tenant_id, line.variant_id, lock=lock)
        if variant is not None and (not active_only or (variant.is_active and variant.product.is_active)):
            return Resolution(product=variant.product, variant=variant)

    if line.product_id is not None:
        product = repo.get_product(tenant_id, line.product_id, lock=lock)
        if product is not None and (not active_only or product.is_active):
            return Resolution(product=product)

    return resolve_by_name(repo, tenant_id, line.name, lock=lock, active_only=active_only)


def resolve_by_name(repo, tenant_id: int, name: str, *, lock: bool = False, active_only: bool = False) -> Resolution:
    """Name-only lookup. Purchase delete/restore use it under REVERSAL_RESOLUTION=name."""
    product = repo.find_product_by_name(tenant_id, name, lock=lock)
    if product is None or (active_only and not product.is_active):
        return Resolution()
    return Resolution(product=product)
