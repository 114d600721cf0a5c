"""Rate-limited async HTTP client for the market price endpoint."""

from __future__ import annotations

import asyncio
import logging
import math
import re
from collections.abc import Awaitable, Callable
from datetime import datetime

import httpx
from aiolimiter import AsyncLimiter

from case_tracker.core.config import MarketConfig
from case_tracker.core.exceptions import FetchError, PriceParseError, RateLimitError
from case_tracker.core.models import FetchAttempt, ItemId, PriceObservation, utc_now

logger = logging.getLogger(__name__)

# Substituted when the listing has no lowest price
_MISSING_PRICE = "$0.00"
_NON_NUMERIC = re.compile(r"[^0-9.]")

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], datetime]


def parse_lowest_price(value: object) -> float:
    """Turn a ``lowest_price`` field such as ``"$1,234.56"`` into a float.

    Every character other than digits and ``.`` is dropped before parsing.
    A missing, null or empty value counts as ``"$0.00"``.

    Raises:
        PriceParseError: If nothing numeric remains after stripping, or the
            number is too large to represent.
    """
    if value is None or value == "":
        value = _MISSING_PRICE
    if not isinstance(value, str):
        value = str(value)

    digits = _NON_NUMERIC.sub("", value)
    try:
        price = float(digits)
    except ValueError as e:
        raise PriceParseError(
            f"Unparseable lowest_price: {value!r}",
            context={"raw": value[:64]},
        ) from e
    if not math.isfinite(price):
        raise PriceParseError(
            f"Unparseable lowest_price: {value[:64]!r} overflows",
            context={"raw": value[:64]},
        )
    return price


class MarketClient:
    """Rate-limited async client for per-item market price lookups.

    One request per item, strictly one in flight. HTTP 429 responses are
    retried with exponential backoff; every other failure gives up on the
    item immediately. Failures never raise out of ``fetch_price``; they are
    reported on the returned ``FetchAttempt``.

    ``sleep`` and ``clock`` are injectable so the backoff policy can be
    exercised without real timers.

    Use via ``async with MarketClient(...) as client:``.
    """

    def __init__(
        self,
        config: MarketConfig,
        *,
        sleep: SleepFn = asyncio.sleep,
        clock: ClockFn = utc_now,
    ) -> None:
        self._config = config
        self._sleep = sleep
        self._clock = clock
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)
        self._in_flight = asyncio.Semaphore(config.max_concurrent_fetches)
        self._client = httpx.AsyncClient(
            headers={"User-Agent": config.user_agent, "Accept": "application/json"},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> MarketClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    def backoff_seconds(self, attempt: int) -> float:
        """Delay before retrying after the ``attempt``-th rate-limited response."""
        return self._config.base_delay_ms * (2**attempt) / 1000.0

    def request_params(self, item_id: ItemId) -> dict[str, str | int]:
        return {
            "appid": self._config.appid,
            "currency": self._config.currency,
            "market_hash_name": item_id,
        }

    # --- Price Lookup ---

    async def fetch_price(self, item_id: ItemId) -> FetchAttempt:
        """Fetch the lowest listed price for one item.

        Retry policy:
            - HTTP 429: sleep ``base_delay_ms * 2**attempt`` ms and retry,
              giving up after ``max_retries`` rate-limited responses.
            - Transport errors, other HTTP statuses, undecodable bodies:
              no retry.

        Returns:
            FetchAttempt carrying either the observation or the failure reason.
        """
        attempts = 0
        requests = 0
        try:
            while True:
                requests += 1
                response = await self._send(item_id)

                if response.status_code == 429:
                    attempts += 1
                    if attempts >= self._config.max_retries:
                        raise RateLimitError(
                            f"Rate limit exceeded after {attempts} attempts: {item_id}",
                            context={"item_id": item_id, "attempts": attempts},
                        )
                    delay = self.backoff_seconds(attempts)
                    logger.warning(
                        "Rate limited (429) on %r, retrying in %.1fs (attempt %d/%d)",
                        item_id, delay, attempts, self._config.max_retries,
                    )
                    await self._sleep(delay)
                    continue

                if response.status_code != 200:
                    raise FetchError(
                        f"HTTP {response.status_code} for {item_id}",
                        context={"item_id": item_id, "status_code": response.status_code},
                    )

                price = self._extract_price(item_id, response)
                observation = PriceObservation(
                    item_id=item_id, price=price, observed_at=self._clock()
                )
                logger.info("Fetched %s: $%.2f", item_id, price)
                return FetchAttempt(
                    item_id=item_id,
                    attempts=attempts,
                    requests_issued=requests,
                    observation=observation,
                )

        except RateLimitError as e:
            logger.warning("Skipping %r: %s", item_id, e)
            return FetchAttempt(
                item_id=item_id,
                attempts=attempts,
                requests_issued=requests,
                error=str(e),
                rate_limited=True,
            )
        except FetchError as e:
            logger.error("Failed to fetch %r: %s", item_id, e)
            return FetchAttempt(
                item_id=item_id,
                attempts=attempts,
                requests_issued=requests,
                error=str(e),
            )

    async def _send(self, item_id: ItemId) -> httpx.Response:
        """Issue one GET through the token bucket; transport errors become FetchError."""
        async with self._in_flight:
            await self._limiter.acquire()
            try:
                return await self._client.get(
                    self._config.price_endpoint, params=self.request_params(item_id)
                )
            except httpx.HTTPError as e:
                raise FetchError(
                    f"Request failed for {item_id}: {type(e).__name__}: {e}",
                    context={"item_id": item_id, "error": str(e)},
                ) from e

    def _extract_price(self, item_id: ItemId, response: httpx.Response) -> float:
        try:
            payload = response.json()
        except ValueError as e:
            raise PriceParseError(
                f"Response for {item_id} is not JSON",
                context={"item_id": item_id, "raw": response.text[:64]},
            ) from e

        if not isinstance(payload, dict):
            raise PriceParseError(
                f"Response for {item_id} is not a JSON object",
                context={"item_id": item_id},
            )

        try:
            return parse_lowest_price(payload.get("lowest_price"))
        except PriceParseError as e:
            e.context["item_id"] = item_id
            raise
