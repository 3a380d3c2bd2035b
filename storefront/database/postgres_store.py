import asyncio
import asyncpg
import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, List, Optional
from config import settings
from storefront.exceptions import BackendError
from storefront.models.catalog import DEFAULT_CATEGORY, Product, ProductFilters, ProductIn
from storefront.models.checkout import CustomerRecord, OrderLineRecord, OrderRecord, OrderStatus
from storefront.services.catalog import PRODUCT_COLUMNS, build_product_query

logger = logging.getLogger(__name__)

@asynccontextmanager
async def backend_errors(action: str, pass_timeouts: bool = False):
    """Re-raise driver, connection and timeout failures as BackendError.

    With ``pass_timeouts`` a timeout propagates unchanged, for callers that
    run their own deadline around the block.
    """
    try:
        yield
    except (TimeoutError, asyncio.TimeoutError) as e:
        if pass_timeouts:
            raise
        logger.error(f"[Database] Timed out trying to {action}")
        raise BackendError(f"Timed out trying to {action}") from e
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.error(f"[Database] Failed to {action}: {e}")
        raise BackendError(f"Failed to {action}") from e

class PostgresOrderWriter:
    """Checkout writes bound to one connection inside one transaction"""

    def __init__(self, conn):
        self.conn = conn

    async def find_customer_by_phone(self, phone_number: str) -> Optional[CustomerRecord]:
        async with backend_errors("look up customer"):
            row = await self.conn.fetchrow("""
                SELECT id::text AS id, name, phone_number
                FROM customers
                WHERE phone_number = $1
            """, phone_number)
        return CustomerRecord(**dict(row)) if row else None

    async def create_customer(self, name: str, phone_number: str) -> CustomerRecord:
        async with backend_errors("create customer"):
            row = await self.conn.fetchrow("""
                INSERT INTO customers (name, phone_number)
                VALUES ($1, $2)
                RETURNING id::text AS id, name, phone_number
            """, name, phone_number)
        logger.info(f"[Database] Created customer {row['id']} for {phone_number}")
        return CustomerRecord(**dict(row))

    async def create_order(self, customer_id: str, total_amount: Decimal) -> OrderRecord:
        async with backend_errors("create order"):
            row = await self.conn.fetchrow("""
                INSERT INTO orders (customer_id, total_amount, status)
                VALUES ($1::uuid, $2, $3)
                RETURNING id::text AS id, customer_id::text AS customer_id, total_amount, status
            """, customer_id, total_amount, OrderStatus.PENDING.value)
        logger.info(f"[Database] Created order {row['id']} for customer {customer_id}")
        return OrderRecord(**dict(row))

    async def create_order_items(self, lines: List[OrderLineRecord]):
        async with backend_errors("create order items"):
            await self.conn.executemany("""
                INSERT INTO order_items (order_id, product_id, quantity, price_at_order)
                VALUES ($1::uuid, $2::uuid, $3, $4)
            """, [
                (line.order_id, line.product_id, line.quantity, line.price_at_order)
                for line in lines
            ])
        logger.info(f"[Database] Created {len(lines)} order item(s)")

class PostgresStore:
    def __init__(self, connection_string: Optional[str] = None):
        self.connection_string = connection_string or settings.DATABASE_URL
        self.pool = None

    async def init_pool(self):
        """Initialize connection pool"""
        try:
            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=2,
                max_size=10,
                command_timeout=60
            )
            logger.info("[Database] Connection pool initialized")
            await self.init_tables()
        except Exception as e:
            logger.error(f"[Database] Failed to initialize pool: {e}")
            raise

    async def init_tables(self):
        """Create tables if they don't exist"""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    name VARCHAR(255) NOT NULL,
                    description TEXT,
                    price NUMERIC(12, 2) NOT NULL CHECK (price >= 0),
                    image_url TEXT,
                    category VARCHAR(100),
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                );

                CREATE TABLE IF NOT EXISTS customers (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    name VARCHAR(255) NOT NULL,
                    phone_number VARCHAR(50) NOT NULL UNIQUE,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                );

                CREATE TABLE IF NOT EXISTS orders (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    customer_id UUID NOT NULL REFERENCES customers(id),
                    total_amount NUMERIC(12, 2) NOT NULL,
                    status VARCHAR(50) NOT NULL DEFAULT 'pending',
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                );

                CREATE TABLE IF NOT EXISTS order_items (
                    id BIGSERIAL PRIMARY KEY,
                    order_id UUID NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
                    product_id UUID REFERENCES products(id) ON DELETE SET NULL,
                    quantity INTEGER NOT NULL CHECK (quantity >= 1),
                    price_at_order NUMERIC(12, 2) NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_products_category
                ON products(category);

                CREATE INDEX IF NOT EXISTS idx_order_items_order_id
                ON order_items(order_id);
            """)
            logger.info("[Database] Tables initialized")

    def _require_pool(self):
        if self.pool is None:
            raise BackendError("Database pool is not initialized")
        return self.pool

    async def list_products(self, filters: ProductFilters) -> List[Product]:
        sql, args = build_product_query(filters)
        async with backend_errors("list products"):
            async with self._require_pool().acquire() as conn:
                rows = await conn.fetch(sql, *args)
        return [Product(**dict(row)) for row in rows]

    async def get_product(self, product_id: str) -> Optional[Product]:
        async with backend_errors("fetch product"):
            async with self._require_pool().acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id::text = $1",
                    product_id,
                )
        return Product(**dict(row)) if row else None

    async def list_categories(self) -> List[str]:
        """Distinct non-empty categories, sorted"""
        async with backend_errors("list categories"):
            async with self._require_pool().acquire() as conn:
                rows = await conn.fetch("""
                    SELECT DISTINCT category FROM products
                    WHERE category IS NOT NULL AND category <> ''
                    ORDER BY category
                """)
        return [row["category"] for row in rows]

    async def create_product(self, data: ProductIn) -> Product:
        async with backend_errors("create product"):
            async with self._require_pool().acquire() as conn:
                row = await conn.fetchrow(f"""
                    INSERT INTO products (name, description, price, image_url, category)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING {PRODUCT_COLUMNS}
                """, data.name, data.description, data.price, data.image_url,
                    data.category or DEFAULT_CATEGORY)
        logger.info(f"[Database] Created product {row['id']}")
        return Product(**dict(row))

    async def update_product(self, product_id: str, data: ProductIn) -> Optional[Product]:
        async with backend_errors("update product"):
            async with self._require_pool().acquire() as conn:
                row = await conn.fetchrow(f"""
                    UPDATE products
                    SET name = $2, description = $3, price = $4, image_url = $5, category = $6
                    WHERE id::text = $1
                    RETURNING {PRODUCT_COLUMNS}
                """, product_id, data.name, data.description, data.price, data.image_url,
                    data.category or DEFAULT_CATEGORY)

        if row:
            logger.info(f"[Database] Updated product {product_id}")
            return Product(**dict(row))
        logger.warning(f"[Database] No product found for {product_id}")
        return None

    async def delete_product(self, product_id: str) -> bool:
        async with backend_errors("delete product"):
            async with self._require_pool().acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM products WHERE id::text = $1", product_id
                )

        if result == "DELETE 1":
            logger.info(f"[Database] Deleted product {product_id}")
            return True
        logger.warning(f"[Database] No product found for {product_id}")
        return False

    @asynccontextmanager
    async def order_writer(self) -> AsyncIterator[PostgresOrderWriter]:
        """Customer, order and order item writes that commit or roll back together"""
        async with backend_errors("open checkout transaction"):
            conn = await self._require_pool().acquire()
        try:
            async with backend_errors("commit checkout transaction", pass_timeouts=True):
                async with conn.transaction():
                    yield PostgresOrderWriter(conn)
        finally:
            await self._require_pool().release(conn)

    async def close(self):
        """Close connection pool"""
        if self.pool:
            await self.pool.close()
            logger.info("[Database] Connection pool closed")
