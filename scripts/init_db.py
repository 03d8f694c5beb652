"""Creates the data directory and seeds demo users, an address and products."""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.database import db  # noqa: E402


if db.list_records("users"):
    print(f"{db._file_path('users')} already has users, nothing to do")
    sys.exit(0)

db.data_dir.mkdir(parents=True, exist_ok=True)

admin = db.create_record("users", {"email": "admin@example.com", "first_name": "Ada", "last_name": "Admin",
                                   "role": "admin"})
customer = db.create_record("users", {"email": "casey@example.com", "first_name": "Casey", "last_name": "Buyer",
                                      "role": "customer"})
address = db.create_record("shipping_addresses", {
    "user_id": customer["id"], "full_name": "Casey Buyer", "line1": "1 Main St",
    "city": "Springfield", "postal_code": "12345", "country": "US",
})

products = [
    {"name": "Oak Chair", "slug": "oak-chair", "price": "25.00", "weight": "4.5", "inventory_quantity": 10},
    {"name": "Desk Lamp", "slug": "desk-lamp", "price": "39.90", "weight": "1.2", "inventory_quantity": 3},
    {"name": "Wool Rug", "slug": "wool-rug", "price": "120.00", "weight": "8", "inventory_quantity": 0,
     "allow_backorder": True},
]
for p in products:
    db.create_record("products", {"weight_unit": "kg", "allow_backorder": False, "status": "active", **p})

print(f"Seeded data in {db.data_dir}")
print(f"  admin token:    {admin['id']}")
print(f"  customer token: {customer['id']} (shipping address {address['id']})")
