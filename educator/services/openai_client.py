"""
Shared OpenAI client
Built once from settings; callers must check OPENAI_CONFIGURED first
"""
import logging
from functools import lru_cache

from openai import AsyncOpenAI

from educator.core.config import settings
from educator.core.errors import UpstreamUnconfigured

logger = logging.getLogger(__name__)


@lru_cache()
def get_openai_client() -> AsyncOpenAI:
    """
    Get the cached async OpenAI client

    Raises:
        UpstreamUnconfigured: No API key is configured
    """
    if not settings.OPENAI_CONFIGURED:
        raise UpstreamUnconfigured()

    logger.info(
        f"Creating OpenAI client (timeout: {settings.UPSTREAM_TIMEOUT_SECONDS}s, "
        f"max retries: {settings.UPSTREAM_MAX_RETRIES})"
    )
    return AsyncOpenAI(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        max_retries=settings.UPSTREAM_MAX_RETRIES,
    )
