import logging

from slowapi import Limiter
from slowapi.util import get_remote_address

from identity_service.core.config import settings

logger = logging.getLogger(__name__)


def _storage_uri() -> str:
    """Shared Redis counters in production, in-process memory elsewhere."""
    if settings.ENV != "prod" or not settings.REDIS_URL:
        logger.info("Rate limiter using in-memory storage")
        return "memory://"
    return settings.REDIS_URL


limiter = Limiter(key_func=get_remote_address, storage_uri=_storage_uri())

RATE_LIMITS = {
    "oauth_login": "30/minute",
    "oauth_callback": "60/minute",
    # Handoff codes are guessable only by brute force; keep the window tight
    "oauth_exchange": "10/minute" if settings.ENV == "prod" else "100/minute",
}
