# tests/conftest.py
import os
import sys
import tempfile
import shutil
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# ensure project root is importable
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# point the settings at a throwaway data dir before storefront.database / storefront.main
# are imported, so the module-level db never touches ./data
_tmp_data_dir = tempfile.mkdtemp(prefix="test_data_")
from storefront import config as app_config  # keep after tmpdir creation
_orig_settings_data_dir = app_config.settings.DATA_DIR
app_config.settings.DATA_DIR = Path(_tmp_data_dir)
app_config.settings.LOCK_TIMEOUT = 5.0

from storefront.database import FileBackedDB  # noqa: E402
from storefront.api.deps import get_db  # noqa: E402
from storefront.main import app  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def session_data_dir():
    try:
        yield Path(_tmp_data_dir)
    finally:
        app_config.settings.DATA_DIR = _orig_settings_data_dir
        shutil.rmtree(_tmp_data_dir, ignore_errors=True)


@pytest.fixture
def store(tmp_path):
    """A fresh, empty file-backed DB per test."""
    return FileBackedDB(data_dir=tmp_path / "data")


@pytest.fixture
def client(store):
    app.dependency_overrides[get_db] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def auth_header():
    """
    Build an Authorization header from a token or a raw user id.
    Usage: hdr = auth_header(user["id"])
    """
    def _h(tok: str):
        return {"Authorization": f"Bearer {tok}"}
    return _h


@pytest.fixture
def make_user(store):
    def _fn(role="customer", email=None):
        email = email or f"user_{os.urandom(4).hex()}@example.test"
        return store.create_record("users", {"email": email, "first_name": "Test", "last_name": role.title(),
                                             "role": role})
    return _fn


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", email="admin@example.test")


@pytest.fixture
def make_address(store):
    def _fn(user_id: str):
        return store.create_record("shipping_addresses", {
            "user_id": user_id, "full_name": "Test Person", "line1": "1 Test Road",
            "city": "Testville", "postal_code": "00001", "country": "US",
        })
    return _fn


@pytest.fixture
def address(customer, make_address):
    return make_address(customer["id"])


@pytest.fixture
def make_product(store):
    """
    Create a product row. Usage: make_product(price="25.00", stock=10, allow_backorder=False, status="active")
    """
    def _fn(name=None, price="10.00", stock=10, allow_backorder=False, status="active", weight="1.0"):
        name = name or f"Product {os.urandom(3).hex()}"
        return store.create_record("products", {
            "name": name,
            "slug": name.lower().replace(" ", "-"),
            "price": price,
            "weight": weight,
            "weight_unit": "kg",
            "inventory_quantity": stock,
            "allow_backorder": allow_backorder,
            "status": status,
        })
    return _fn


@pytest.fixture
def stock_of(store):
    def _fn(product_id: str) -> int:
        return int(store.get_record("products", "id", product_id)["inventory_quantity"])
    return _fn


@pytest.fixture
def order_request(customer, address):
    """
    Build a CreateOrderRequest for the default customer.
    Usage: req = order_request([(product_id, qty), ...], shipping_method="express")
    """
    from storefront.models.order import CreateOrderItem, CreateOrderRequest

    def _fn(lines, **kwargs):
        params = {"user_id": customer["id"], "shipping_address_id": address["id"]}
        params.update(kwargs)
        items = [CreateOrderItem(product_id=pid, quantity=qty) for pid, qty in lines]
        return CreateOrderRequest(order_items=items, **params)
    return _fn


@pytest.fixture
def make_cart(store):
    """
    Store a cart row for a user. Usage: make_cart(user_id, [(product_id, qty), ...])
    """
    from storefront.models.cart import Cart, CartItem

    def _fn(user_id: str, lines):
        cart = Cart(user_id=user_id, items=[CartItem(product_id=pid, quantity=qty) for pid, qty in lines])
        return store.create_record("carts", cart.to_dict(), id_field="user_id")
    return _fn


@pytest.fixture
def cart_size(store):
    """Total quantity in a user's stored cart."""
    from storefront.models.cart import Cart

    def _fn(user_id: str) -> int:
        row = store.get_record("carts", "user_id", user_id)
        return sum(it.quantity for it in Cart.from_dict(row).items) if row else 0
    return _fn
