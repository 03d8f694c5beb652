# storefront/services/order_numbers.py
from typing import Callable, Optional
import logging
import secrets
import string
import time

from storefront.config import settings
from storefront.core.errors import OrderNumberExhausted

logger = logging.getLogger(__name__)

SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def _candidate(prefix: str, clock: Callable[[], float]) -> str:
    millis = str(int(clock() * 1000))[-8:]
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(4))
    return f"{prefix}-{millis}-{suffix}".upper()


def generate_order_number(exists: Callable[[str], bool], prefix: Optional[str] = None,
                          max_attempts: Optional[int] = None,
                          clock: Callable[[], float] = time.time,
                          sleep: Callable[[float], None] = time.sleep) -> str:
    """
    Human-readable order number: PREFIX-<last 8 digits of the ms timestamp>-<4 random chars>.

    `exists(candidate)` reports whether a number is already taken. On a
    collision we wait a millisecond (so the timestamp part moves on) and try
    again, at most `max_attempts` times before raising OrderNumberExhausted.
    """
    prefix = prefix or settings.ORDER_NUMBER_PREFIX
    attempts = max_attempts or settings.ORDER_NUMBER_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        candidate = _candidate(prefix, clock)
        if not exists(candidate):
            return candidate
        logger.info("Order number collision on %s (attempt %d/%d)", candidate, attempt, attempts)
        sleep(0.001)
    raise OrderNumberExhausted(attempts)


def order_number_taken(store) -> Callable[[str], bool]:
    """`exists` callback backed by the orders table."""
    return lambda candidate: store.get_record("orders", "order_number", candidate) is not None
