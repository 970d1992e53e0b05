"""
Shared fixtures for CryptoStore tests.

Databases are file-backed SQLite in tmp_path so that concurrency tests
can open one connection per thread against the same data.
"""

import itertools
import threading
from types import SimpleNamespace

import pytest

from core.exceptions import GatewayUnavailableError, PaymentRequestError
from db.database import Database
from db.schema import Product, ProductVariant
from models.order import LineRequest, ShippingInfo
from models.settlement import GatewayStatus, PaymentRequest, RequestStatus
from services.inventory_ledger import InventoryLedger
from services.order_ledger import OrderLedger
from services.pricing_service import PricingService
from services.reconciliation_service import ReconciliationService


# Fakes

class FakeGateway:
    """
    In-memory payment network.

    Issues sequential request refs and reports whatever status a test set
    for each ref (PENDING by default). Thread-safe.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self.statuses = {}
        self.settlement_refs = {}
        self.issued = []
        self.status_queries = 0
        self.fail_create = False
        self.fail_status = False
        self.rejected_refs = set()

    def create_payment_request(self, amount_sats, memo):
        if self.fail_create:
            raise GatewayUnavailableError("gateway down", operation="create_payment_request")
        with self._lock:
            ref = f"req-{next(self._counter)}"
            self.issued.append((ref, amount_sats, memo))
            self.statuses[ref] = GatewayStatus.PENDING
        return PaymentRequest(encoded_request=f"lnbc{amount_sats}n1{ref}", request_ref=ref)

    def get_request_status(self, request_ref):
        if self.fail_status:
            raise GatewayUnavailableError("gateway down", operation="get_request_status")
        if request_ref in self.rejected_refs:
            raise PaymentRequestError("unknown payment request", operation="get_request_status")
        with self._lock:
            self.status_queries += 1
            status = self.statuses.get(request_ref, GatewayStatus.UNKNOWN)
        return RequestStatus(status=status, settlement_ref=self.settlement_refs.get(request_ref))

    def settle(self, request_ref, status=GatewayStatus.TRANSFER_COMPLETED):
        with self._lock:
            self.statuses[request_ref] = status
            self.settlement_refs[request_ref] = f"tx-{request_ref}"


# Catalog

def seed_catalog(database):
    """
    Insert the demo catalog and return its ids.

    classic-tee      25000 sats, variants S/M/L (10 each)
    sticker-pack      5000 sats, one variant (50)
    retired-hoodie   inactive product
    enamel-mug        9000 sats, active variant + inactive variant
    """
    tee = Product(slug="classic-tee", name="Classic Tee", price_sats=25000, price_usd_cents=2500)
    tee_s = ProductVariant(size="S", sku="TEE-S", inventory_count=10)
    tee_m = ProductVariant(size="M", sku="TEE-M", inventory_count=10)
    tee_l = ProductVariant(size="L", sku="TEE-L", inventory_count=10)
    tee.variants = [tee_s, tee_m, tee_l]

    stickers = Product(slug="sticker-pack", name="Sticker Pack", price_sats=5000)
    stickers_default = ProductVariant(sku="STICKERS", inventory_count=50)
    stickers.variants = [stickers_default]

    hoodie = Product(slug="retired-hoodie", name="Retired Hoodie", price_sats=60000, is_active=False)

    mug = Product(slug="enamel-mug", name="Enamel Mug", price_sats=9000)
    mug_white = ProductVariant(color="white", sku="MUG-W", inventory_count=3)
    mug_black = ProductVariant(color="black", sku="MUG-B", inventory_count=3, is_active=False)
    mug.variants = [mug_white, mug_black]

    with database.session() as session:
        session.add_all([tee, stickers, hoodie, mug])
        session.flush()
        return SimpleNamespace(
            tee=tee.id,
            tee_s=tee_s.id,
            tee_m=tee_m.id,
            tee_l=tee_l.id,
            stickers=stickers.id,
            stickers_default=stickers_default.id,
            hoodie=hoodie.id,
            mug=mug.id,
            mug_white=mug_white.id,
            mug_black=mug_black.id,
        )


# Fixtures

@pytest.fixture
def database(tmp_path):
    """Fresh file-backed database with the schema created."""
    db = Database(f"sqlite:///{tmp_path / 'store.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def catalog(database):
    return seed_catalog(database)


@pytest.fixture
def pricing(database):
    return PricingService(database)


@pytest.fixture
def order_ledger(database):
    return OrderLedger(database)


@pytest.fixture
def inventory_ledger(database):
    return InventoryLedger(database)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def engine(database, pricing, order_ledger, inventory_ledger, gateway):
    return ReconciliationService(
        database=database,
        pricing=pricing,
        orders=order_ledger,
        inventory=inventory_ledger,
        gateway=gateway,
        memo_prefix="TestStore",
    )


@pytest.fixture
def shipping():
    return ShippingInfo(
        name="Satoshi N.",
        address={"line1": "1 Genesis Way", "city": "Austin", "country": "US"},
        email="satoshi@example.com",
    )


@pytest.fixture
def scenario_items(catalog):
    """2 x classic-tee/M + 1 x sticker-pack = 55000 sats."""
    return [
        LineRequest(product_ref="classic-tee", variant_id=catalog.tee_m, quantity=2),
        LineRequest(product_ref="sticker-pack", variant_id=catalog.stickers_default, quantity=1),
    ]
