import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional
from pydantic import TypeAdapter, ValidationError
from storefront.models.cart import LineItem

logger = logging.getLogger(__name__)

_line_items = TypeAdapter(List[LineItem])

def dump_cart(items: List[LineItem]) -> str:
    """Serialize the cart as a JSON list, preserving line order"""
    return _line_items.dump_json(items).decode()

def parse_cart(payload: str) -> List[LineItem]:
    return _line_items.validate_json(payload)

class CartStore:
    """A single durable slot holding the whole cart"""

    def load(self) -> List[LineItem]:
        raise NotImplementedError

    def save(self, items: List[LineItem]) -> None:
        raise NotImplementedError

class MemoryCartStore(CartStore):
    def __init__(self, payload: Optional[str] = None):
        self.payload = payload

    def load(self) -> List[LineItem]:
        if self.payload is None:
            return []
        try:
            return parse_cart(self.payload)
        except ValidationError as e:
            logger.warning(f"[Cart Store] Discarding unreadable cart payload: {e}")
            return []

    def save(self, items: List[LineItem]) -> None:
        self.payload = dump_cart(items)

class JsonFileCartStore(CartStore):
    def __init__(self, directory: str, key: str):
        self.path = Path(directory) / f"{key}.json"

    def load(self) -> List[LineItem]:
        """Read the stored cart, falling back to an empty one if it is missing or corrupt"""
        try:
            payload = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"[Cart Store] No stored cart at {self.path}, starting empty")
            return []
        except OSError as e:
            logger.error(f"[Cart Store] Failed to read {self.path}: {e}")
            return []

        try:
            items = parse_cart(payload)
        except ValidationError as e:
            logger.warning(f"[Cart Store] Discarding unreadable cart at {self.path}: {e}")
            return []

        logger.info(f"[Cart Store] Loaded {len(items)} line item(s) from {self.path}")
        return items

    def save(self, items: List[LineItem]) -> None:
        """Overwrite the slot with the full cart"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".cart-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(dump_cart(items))
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
