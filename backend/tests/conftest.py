"""
Pytest fixtures for refill_pos tests.

Provides the Flask app on an in-memory database, an in-memory remote store
with failure injection for register tests, and an httpx client wired to the
Flask app for end-to-end register tests.
"""

import httpx
import pytest

from refill_pos import create_app
from refill_pos.extensions import db
from refill_pos.register import (
    CatalogSnapshot,
    ConnectivityGate,
    HttpRemoteStore,
    InlineDispatcher,
    LocalStore,
    Product,
    RegisterSession,
    RemoteError,
    Sale,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def http_remote(app, db_session):
    """HttpRemoteStore talking to the Flask app in-process."""
    transport = httpx.WSGITransport(app=app)
    remote = HttpRemoteStore(client=httpx.Client(transport=transport, base_url="http://testserver"))
    yield remote
    remote.close()


# ---------------------------------------------------------------------------
# In-memory remote store
# ---------------------------------------------------------------------------

class FakeRemote:
    """
    Same surface as HttpRemoteStore, backed by dicts.

    fail(key, times) makes the next `times` calls of e.g. "sales.insert"
    raise RemoteError; lose_response(key, times) lets the write land and then
    raises, like a timeout after the server committed; setting down=True makes
    every call fail.
    """

    def __init__(self):
        self.calls = []
        self.down = False
        self._failures = {}
        self._lost = {}
        self.products = _FakeProducts(self)
        self.sales = _FakeSales(self)
        self.stock_logs = _FakeStockLogs(self)
        self.containers = _FakeContainers(self)

    def fail(self, key, times=1):
        self._failures[key] = self._failures.get(key, 0) + times

    def lose_response(self, key, times=1):
        self._lost[key] = self._lost.get(key, 0) + times

    def respond(self, key):
        if self._lost.get(key, 0) > 0:
            self._lost[key] -= 1
            raise RemoteError(f"{key}: read timed out")

    def hit(self, key):
        self.calls.append(key)
        if self.down:
            raise RemoteError(f"{key}: connection refused")
        if self._failures.get(key, 0) > 0:
            self._failures[key] -= 1
            raise RemoteError(f"{key} failed", status_code=500)

    def count(self, key):
        return self.calls.count(key)

    def seed(self, *products):
        for product in products:
            self.products.rows[product.id] = product.to_dict()

    def ping(self):
        return not self.down


class _FakeProducts:
    def __init__(self, remote):
        self._remote = remote
        self.rows = {}

    def list(self, active_only=True):
        self._remote.hit("products.list")
        return [
            Product.from_dict(row) for row in self.rows.values()
            if row.get("is_active", True) or not active_only
        ]

    def insert(self, product):
        self._remote.hit("products.insert")
        payload = product.to_dict() if isinstance(product, Product) else dict(product)
        self.rows[payload["id"]] = {**self.rows.get(payload["id"], {}), **payload}
        return Product.from_dict(self.rows[payload["id"]])

    def update(self, product_id, partial):
        self._remote.hit("products.update")
        if product_id not in self.rows:
            raise RemoteError("Product not found", status_code=404)
        self.rows[product_id].update(partial)

    def set_active(self, product_id, is_active):
        self._remote.hit("products.set_active")
        if product_id not in self.rows:
            raise RemoteError("Product not found", status_code=404)
        self.rows[product_id]["is_active"] = bool(is_active)


class _FakeSales:
    def __init__(self, remote):
        self._remote = remote
        self.rows = {}
        self.items = {}

    def _items_of(self, sale_id):
        rows = [item for item in self.items.values() if item["sale_id"] == sale_id]
        return sorted(rows, key=lambda item: item["position"])

    def insert(self, header):
        self._remote.hit("sales.insert")
        if header["id"] not in self.rows:
            self.rows[header["id"]] = dict(header)
        return dict(self.rows[header["id"]])

    def get(self, sale_id):
        self._remote.hit("sales.get")
        if sale_id not in self.rows:
            return None
        return Sale.from_dict({**self.rows[sale_id], "items": self._items_of(sale_id)})

    def insert_items(self, items):
        self._remote.hit("sales.insert_items")
        sale_id = items[0].sale_id
        if sale_id not in self.rows:
            raise RemoteError("Sale not found", status_code=404)
        for item in items:
            self.items[item.id] = item.to_dict()
        self._remote.respond("sales.insert_items")

    def list(self, limit=100):
        self._remote.hit("sales.list")
        sales = [
            Sale.from_dict({**row, "items": self._items_of(sale_id)})
            for sale_id, row in self.rows.items()
        ]
        sales.sort(key=lambda s: s.created_at, reverse=True)
        return sales[:limit]


class _FakeStockLogs:
    def __init__(self, remote):
        self._remote = remote
        self.rows = {}

    def insert(self, entry):
        self._remote.hit("stock_logs.insert")
        self.rows.setdefault(entry["id"], dict(entry))

    def get(self, log_id):
        self._remote.hit("stock_logs.get")
        return self.rows.get(log_id)


class _FakeContainers:
    def __init__(self, remote):
        self._remote = remote
        self.rows = {}

    def insert(self, record):
        self._remote.hit("containers.insert")
        self.rows.setdefault(record["id"], dict(record))


# ---------------------------------------------------------------------------
# Register fixtures
# ---------------------------------------------------------------------------

ICE = Product(id="ice-1", name="Ice bag", price=20, unit="bag", category="ice", stock=50, low_stock_threshold=5)
GAS = Product(
    id="gas-1", name="Gas 15kg", price=300, unit="cylinder", category="gas",
    stock=10, empty_stock=2, low_stock_threshold=2, deposit_amount=200,
)


@pytest.fixture
def ice():
    return Product.from_dict(ICE.to_dict())


@pytest.fixture
def gas():
    return Product.from_dict(GAS.to_dict())


@pytest.fixture
def remote(ice, gas):
    fake = FakeRemote()
    fake.seed(ice, gas)
    return fake


@pytest.fixture
def sleeps():
    """Recorded backoff delays instead of real sleeping."""
    return []


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def make_session(sleeps, notifications):
    """Build a RegisterSession with inline background work and no real sleeps."""
    sessions = []

    def _make(remote, *, online=True, store=None, daily_target=0.0, user_id="cashier-1", refresh=True):
        def deliver(kind, message, data):
            notifications.append((kind, message, data))

        session = RegisterSession(
            remote=remote,
            store=store or LocalStore(),
            gate=ConnectivityGate(online=online),
            dispatcher=InlineDispatcher(),
            deliver=deliver,
            retry_delays=(1.0, 2.0, 4.0),
            sleep=sleeps.append,
            daily_target=daily_target,
            user_id=user_id,
        )
        if refresh and online:
            session.refresh_catalog()
        sessions.append(session)
        return session

    yield _make

    for session in sessions:
        session.dispatcher.shutdown()


@pytest.fixture
def catalog(ice, gas):
    return CatalogSnapshot(products=[ice, gas])
