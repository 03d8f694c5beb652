# storefront/services/cart.py
import logging

from storefront.models.cart import Cart
from storefront.models.fields import utcnow

logger = logging.getLogger(__name__)


def clear_cart(store, user_id: str) -> bool:
    """
    Empty the user's cart. Pass the order-creation Transaction as `store` so the
    cart is only cleared if the order commits. Returns False if the user has no cart.
    """
    row = store.get_record("carts", "user_id", user_id)
    if not row:
        return False
    cart = Cart.from_dict(row)
    if not cart.items:
        return True
    cart.clear()
    cart.updated_at = utcnow().isoformat()
    store.update_record("carts", "user_id", user_id, cart.to_dict())
    logger.debug("Cleared cart for user %s", user_id)
    return True
