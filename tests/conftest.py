import asyncio
import itertools
from contextlib import asynccontextmanager
from decimal import Decimal

import pytest

from storefront.database.postgres_store import PostgresStore
from storefront.exceptions import BackendError
from storefront.models.catalog import ALL_CATEGORIES, DEFAULT_CATEGORY, Product, ProductSort
from storefront.models.checkout import CustomerRecord, OrderRecord
from storefront.state.cart import Cart
from storefront.state.store import MemoryCartStore
from storefront.services import whatsapp


class InMemoryOrderWriter:
    def __init__(self, backend):
        self.backend = backend

    async def _enter(self, name):
        self.backend.calls.append(name)
        gate = self.backend.gates.get(name)
        if gate is not None:
            await gate.wait()
        delay = self.backend.delays.get(name)
        if delay:
            await asyncio.sleep(delay)
        error = self.backend.failures.get(name)
        if error is not None:
            raise error

    async def find_customer_by_phone(self, phone_number):
        await self._enter("find_customer_by_phone")
        for customer in self.backend.customers:
            if customer.phone_number == phone_number:
                return customer
        return None

    async def create_customer(self, name, phone_number):
        await self._enter("create_customer")
        customer = CustomerRecord(id=self.backend.next_id("cust"), name=name, phone_number=phone_number)
        self.backend.customers.append(customer)
        return customer

    async def create_order(self, customer_id, total_amount):
        await self._enter("create_order")
        order = OrderRecord(id=self.backend.next_id("order"), customer_id=customer_id, total_amount=total_amount)
        self.backend.orders.append(order)
        return order

    async def create_order_items(self, lines):
        await self._enter("create_order_items")
        self.backend.order_items.extend(lines)


class InMemoryBackend:
    """Stand-in for PostgresStore. Checkout writes roll back on error."""

    def __init__(self, products=(), customers=()):
        self.products = {p.id: p for p in products}
        self.customers = list(customers)
        self.orders = []
        self.order_items = []
        self.calls = []
        self.failures = {}
        self.delays = {}
        self.gates = {}
        self.rollbacks = 0
        self.unavailable = False
        self._ids = itertools.count(1)

    def next_id(self, prefix):
        return f"{prefix}-{next(self._ids)}"

    def _check(self):
        if self.unavailable:
            raise BackendError("backend down")

    @asynccontextmanager
    async def order_writer(self):
        saved = (list(self.customers), list(self.orders), list(self.order_items))
        try:
            yield InMemoryOrderWriter(self)
        except BaseException:
            self.customers, self.orders, self.order_items = saved
            self.rollbacks += 1
            raise

    async def list_products(self, filters):
        self._check()
        products = list(self.products.values())
        if filters.search:
            products = [p for p in products if filters.search.lower() in p.name.lower()]
        if filters.min_price is not None:
            products = [p for p in products if p.price >= filters.min_price]
        if filters.max_price is not None:
            products = [p for p in products if p.price <= filters.max_price]
        if filters.category and filters.category != ALL_CATEGORIES:
            products = [p for p in products if p.category == filters.category]
        if filters.sort == ProductSort.NEWEST:
            return list(reversed(products))
        return sorted(products, key=lambda p: (p.name, p.id))

    async def get_product(self, product_id):
        self._check()
        return self.products.get(product_id)

    async def list_categories(self):
        self._check()
        return sorted({p.category for p in self.products.values() if p.category})

    async def create_product(self, data):
        self._check()
        product = Product(id=self.next_id("prod"), **data.model_dump(exclude={"category"}),
                          category=data.category or DEFAULT_CATEGORY)
        self.products[product.id] = product
        return product

    async def update_product(self, product_id, data):
        self._check()
        if product_id not in self.products:
            return None
        product = Product(id=product_id, **data.model_dump(exclude={"category"}),
                          category=data.category or DEFAULT_CATEGORY)
        self.products[product_id] = product
        return product

    async def delete_product(self, product_id):
        self._check()
        return self.products.pop(product_id, None) is not None


class FakeTransaction:
    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        self.conn.events.append("begin")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.conn.events.append("rollback" if exc_type else "commit")
        self.conn.transaction_error = exc
        return False


class FakeConnection:
    """Records what asyncpg would have been asked to do."""

    def __init__(self):
        self.events = []
        self.rows = []
        self.fetchrow_calls = []
        self.executemany_calls = []
        self.errors = {}
        self.transaction_error = None

    def _maybe_fail(self, method):
        error = self.errors.get(method)
        if error is not None:
            raise error

    def transaction(self):
        return FakeTransaction(self)

    async def fetchrow(self, sql, *args):
        self.fetchrow_calls.append((sql, args))
        self._maybe_fail("fetchrow")
        return self.rows.pop(0)

    async def fetch(self, sql, *args):
        self._maybe_fail("fetch")
        return self.rows.pop(0)

    async def executemany(self, sql, records):
        self.executemany_calls.append((sql, list(records)))
        self._maybe_fail("executemany")


class FakeAcquire:
    """Awaitable and async context manager, like asyncpg's pool.acquire()."""

    def __init__(self, pool):
        self.pool = pool

    async def _acquire(self):
        if self.pool.acquire_error is not None:
            raise self.pool.acquire_error
        self.pool.acquired += 1
        return self.pool.conn

    def __await__(self):
        return self._acquire().__await__()

    async def __aenter__(self):
        return await self._acquire()

    async def __aexit__(self, exc_type, exc, tb):
        await self.pool.release(self.pool.conn)
        return False


class FakePool:
    def __init__(self, conn):
        self.conn = conn
        self.acquired = 0
        self.released = 0
        self.acquire_error = None

    def acquire(self):
        return FakeAcquire(self)

    async def release(self, conn):
        self.released += 1


class RecordingNotifier:
    def __init__(self, error=None):
        self.sent = []
        self.error = error

    async def __call__(self, phone, message):
        if self.error is not None:
            raise self.error
        self.sent.append((phone, message))
        return {"status": "simulated"}


@pytest.fixture()
def product_a():
    return Product(id="A", name="Aeropress", price=Decimal("10.00"), image_url="a.png", category="Coffee")


@pytest.fixture()
def product_b():
    return Product(id="B", name="Beans", price=Decimal("5.50"), image_url="b.png", category="Coffee")


@pytest.fixture()
def product_c():
    return Product(id="C", name="Cup", price=Decimal("3.25"), category="Kitchen")


@pytest.fixture()
def cart_store():
    return MemoryCartStore()


@pytest.fixture()
def cart(cart_store):
    return Cart(cart_store)


@pytest.fixture()
def backend(product_a, product_b, product_c):
    return InMemoryBackend(products=[product_a, product_b, product_c])


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    whatsapp.rate_limit_store.clear()
    yield
    whatsapp.rate_limit_store.clear()


@pytest.fixture()
def pg_conn():
    return FakeConnection()


@pytest.fixture()
def pg_pool(pg_conn):
    return FakePool(pg_conn)


@pytest.fixture()
def pg_store(pg_pool):
    store = PostgresStore("postgresql://storefront@localhost/test")
    store.pool = pg_pool
    return store
