import logging
from decimal import Decimal
from typing import List, Optional
from storefront.models.cart import CartView, LineItem
from storefront.models.catalog import Product
from storefront.state.store import CartStore

logger = logging.getLogger(__name__)

class Cart:
    """The shopper's current selection, one line per product in first-add order.

    Every mutation is committed to the store straight away. A failed write
    is logged and otherwise ignored.
    """

    def __init__(self, store: CartStore):
        self.store = store
        try:
            self._items: List[LineItem] = list(store.load())
        except Exception as e:
            logger.error(f"[Cart] Failed to load stored cart, starting empty: {e}")
            self._items = []

    @property
    def items(self) -> List[LineItem]:
        return [item.model_copy() for item in self._items]

    def is_empty(self) -> bool:
        return not self._items

    def _find(self, product_id: str) -> Optional[LineItem]:
        for item in self._items:
            if item.product_id == product_id:
                return item
        return None

    def _commit(self):
        try:
            self.store.save(self._items)
        except Exception as e:
            logger.error(f"[Cart] Failed to persist cart: {e}")

    def add(self, product: Product) -> LineItem:
        item = self._find(product.id)
        if item:
            item.quantity += 1
        else:
            item = LineItem(
                product_id=product.id,
                name=product.name,
                unit_price=product.price,
                quantity=1,
                image_url=product.image_url,
            )
            self._items.append(item)
        self._commit()
        return item

    def remove(self, product_id: str):
        remaining = [item for item in self._items if item.product_id != product_id]
        if len(remaining) == len(self._items):
            return
        self._items = remaining
        self._commit()

    def set_quantity(self, product_id: str, quantity: int):
        item = self._find(product_id)
        if item is None:
            return
        item.quantity = max(1, quantity)
        self._commit()

    def clear(self):
        self._items = []
        self._commit()

    def total(self) -> Decimal:
        return sum((item.line_total for item in self._items), Decimal("0"))

    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def view(self) -> CartView:
        return CartView(items=self.items, total=self.total(), item_count=self.item_count())
