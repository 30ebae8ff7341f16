"""
Shared HTTP client with timeouts and retries for external APIs.
One RetryPolicy per collaborator (warehouse, Shopify); applied here at the transport
boundary so business code never loops on failures itself.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

RETRYABLE_EXCEPTIONS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff: initial_delay * multiplier**n, capped at max_delay."""
    name: str
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retry_on: tuple[int, ...] = (429, 500, 502, 503, 504)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        if attempt <= 0:
            return 0.0
        delay = self.initial_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay)

    def should_retry_status(self, status_code: int) -> bool:
        return status_code in self.retry_on


# 400 from the warehouse is a data validation error and is never retried
WAREHOUSE_RETRY_POLICY = RetryPolicy(
    name="Warehouse API",
    max_retries=3,
    initial_delay=2.0,
    max_delay=15.0,
    retry_on=(408, 429, 500, 502, 503, 504),
)

SHOPIFY_RETRY_POLICY = RetryPolicy(
    name="Shopify API",
    max_retries=3,
    initial_delay=1.0,
    max_delay=10.0,
    retry_on=(429, 500, 502, 503, 504),
)


async def _sleep_backoff(policy: RetryPolicy, attempt: int) -> None:
    delay = policy.delay_for(attempt)
    if delay > 0:
        await asyncio.sleep(delay)


async def request_with_retry(
    method: str,
    url: str,
    *,
    policy: RetryPolicy,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
    **kwargs: Any,
) -> httpx.Response:
    """
    Perform an HTTP request under `policy`.
    Retries on policy.retry_on status codes and on timeouts/network errors.
    When retries are exhausted on a status code the last response is returned so the
    caller can turn it into a domain error; exhausted network errors are re-raised.
    """
    resp: Optional[httpx.Response] = None
    for attempt in range(policy.max_retries + 1):
        try:
            if client is not None:
                resp = await client.request(method, url, timeout=timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=timeout) as own_client:
                    resp = await own_client.request(method, url, **kwargs)
        except RETRYABLE_EXCEPTIONS as e:
            if attempt < policy.max_retries:
                logger.warning(
                    "[%s] %s %s attempt %s/%s failed: %s",
                    policy.name, method, url, attempt + 1, policy.max_retries + 1, e,
                )
                await _sleep_backoff(policy, attempt + 1)
                continue
            logger.error("[%s] %s %s failed after %s attempts: %s", policy.name, method, url, attempt + 1, e)
            raise
        if attempt < policy.max_retries and policy.should_retry_status(resp.status_code):
            logger.warning(
                "[%s] %s %s -> %s, retrying (attempt %s/%s)",
                policy.name, method, url, resp.status_code, attempt + 1, policy.max_retries + 1,
            )
            await _sleep_backoff(policy, attempt + 1)
            continue
        return resp
    return resp  # type: ignore
