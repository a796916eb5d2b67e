"""
Cost Attribution

Cost of goods sold is the matched product's average unit cost times the
quantity sold. A sale without a matching, costed product contributes exactly
zero; no cost is ever estimated.
"""

from typing import Dict, Iterable, List, Optional, Union

import structlog

from .schemas import ProductCostRecord, RecordId, SaleRecord

logger = structlog.get_logger(__name__)


class ProductCostIndex:
    """
    Identifier-indexed view of the product catalog.

    Built once per request; lookups are O(1). When the catalog holds the
    same identifier twice the first record wins.

    Example:
        index = ProductCostIndex(products)
        cogs = index.cost_of_sales(sales)
    """

    def __init__(self, products: Iterable[ProductCostRecord]):
        self._products: Dict[RecordId, ProductCostRecord] = {}
        for product in products:
            if product.id is not None:
                self._products.setdefault(product.id, product)

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._products

    def get(self, product_id: Optional[RecordId]) -> Optional[ProductCostRecord]:
        if product_id is None:
            return None
        return self._products.get(product_id)

    def unit_cost(self, product_id: Optional[RecordId]) -> Optional[float]:
        """Average unit cost, or None when the product is unknown or uncosted"""
        product = self.get(product_id)
        if product is None or not product.avg_unit_cost:
            return None
        return product.avg_unit_cost

    def cost_of(self, sale: SaleRecord) -> float:
        """Cost contribution of a single sale"""
        cost = self.unit_cost(sale.product_id)
        if cost is None:
            return 0.0
        return cost * sale.quantity

    def cost_of_sales(self, sales: Iterable[SaleRecord]) -> float:
        total = 0.0
        for sale in sales:
            total += self.cost_of(sale)
        return total

    def unmatched(self, sales: Iterable[SaleRecord]) -> List[SaleRecord]:
        """Sales that contribute no cost because no costed product matches"""
        return [sale for sale in sales if self.unit_cost(sale.product_id) is None]


ProductCatalog = Union[ProductCostIndex, Iterable[ProductCostRecord]]


def as_cost_index(products: ProductCatalog) -> ProductCostIndex:
    """Reuse an existing index or build one from catalog records"""
    if isinstance(products, ProductCostIndex):
        return products
    return ProductCostIndex(products)


def attribute_cost(sales: Iterable[SaleRecord], products: ProductCatalog) -> float:
    """
    Total cost of goods sold for ``sales``.

    Args:
        sales: Any slice of sale records
        products: Catalog records or a prebuilt ProductCostIndex

    Returns:
        Unrounded COGS total
    """
    return as_cost_index(products).cost_of_sales(sales)
