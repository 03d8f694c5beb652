# storefront/services/directory.py
"""User and shipping-address lookups the order core depends on."""
from typing import Optional

from storefront.models.user import ShippingAddress, User


def get_user(store, user_id: str) -> Optional[User]:
    """`store` is a FileBackedDB or an open Transaction."""
    if not user_id:
        return None
    row = store.get_record("users", "id", user_id)
    return User.from_dict(row) if row else None


def get_shipping_address(store, address_id: str, user_id: str) -> Optional[ShippingAddress]:
    """Return the address only if it exists AND belongs to `user_id`."""
    if not address_id or not user_id:
        return None
    rows = store.find_records("shipping_addresses", id=address_id, user_id=user_id)
    return ShippingAddress.from_dict(rows[0]) if rows else None
