"""Periodically hit the API so the hosting platform does not idle it.

    python -m storefront.keep_warm [--once] [--url URL] [--interval SECONDS]
"""
import argparse
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import httpx

from storefront.config import STOREFRONT_URL, WARMUP_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

ENDPOINTS = ["/api/warmup", "/api/products?limit=1", "/api/navigation", "/health"]


@dataclass
class PingResult:
    endpoint: str
    ok: bool
    status_code: Optional[int] = None
    elapsed_ms: float = 0.0
    error: Optional[str] = None


async def ping(client: httpx.AsyncClient, endpoint: str) -> PingResult:
    started = time.monotonic()
    try:
        response = await client.get(endpoint)
    except httpx.HTTPError as e:
        logger.warning(f"{endpoint}: {e.__class__.__name__}: {e}")
        return PingResult(endpoint=endpoint, ok=False, error=str(e) or e.__class__.__name__)
    elapsed = (time.monotonic() - started) * 1000
    ok = response.status_code < 400
    if not ok:
        logger.warning(f"{endpoint}: HTTP {response.status_code}")
    return PingResult(endpoint=endpoint, ok=ok, status_code=response.status_code, elapsed_ms=round(elapsed, 1))


async def warm_once(client: httpx.AsyncClient, endpoints: List[str] = ENDPOINTS) -> List[PingResult]:
    results = list(await asyncio.gather(*(ping(client, endpoint) for endpoint in endpoints)))
    succeeded = sum(1 for r in results if r.ok)
    logger.info(f"Keep-warm: {succeeded}/{len(results)} endpoints responded")
    return results


async def run(
    base_url: str = STOREFRONT_URL,
    interval: float = WARMUP_INTERVAL_SECONDS,
    iterations: Optional[int] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    count = 0
    async with httpx.AsyncClient(base_url=base_url, timeout=30.0, transport=transport) as client:
        while iterations is None or count < iterations:
            await warm_once(client)
            count += 1
            if iterations is None or count < iterations:
                await asyncio.sleep(interval)


def main():
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Keep the storefront API warm")
    parser.add_argument("--url", default=STOREFRONT_URL)
    parser.add_argument("--interval", type=float, default=WARMUP_INTERVAL_SECONDS)
    parser.add_argument("--once", action="store_true", help="ping once and exit")
    args = parser.parse_args()

    logger.info(f"Keeping {args.url} warm every {args.interval:.0f}s")
    try:
        asyncio.run(run(args.url, args.interval, iterations=1 if args.once else None))
    except KeyboardInterrupt:
        logger.info("Keep-warm stopped")


if __name__ == "__main__":
    main()
