import time
from typing import Dict, Optional

import httpx


def is_http_locator(locator: str) -> bool:
    return locator.startswith(("http://", "https://"))


def http_get_text(url: str, *, config: Optional[Dict] = None) -> str:
    """
    Fetches a remote script body as text.

    config keys: `timeout` (seconds, default 5.0), `retries` (default 2),
    `backoff` (base delay in seconds, doubled per attempt), `headers`.
    Non-2xx responses raise RuntimeError after the retries are spent.
    """
    cfg = dict(config or {})
    timeout = float(cfg.pop('timeout', 5.0))
    retries = int(cfg.pop('retries', 2))
    backoff = float(cfg.pop('backoff', 0.2))
    headers = dict(cfg.pop('headers', {}))

    with httpx.Client(timeout=timeout, follow_redirects=True) as client:
        last_exc = None
        for attempt in range(retries + 1):
            try:
                resp = client.get(url, headers=headers)
                if 200 <= resp.status_code < 300:
                    return resp.text
                preview = (resp.text or "")[:200]
                raise RuntimeError(f"HTTP {resp.status_code} for {url}: {preview}")
            except Exception as e:
                last_exc = e
                if attempt < retries:
                    time.sleep(backoff * (2 ** attempt))
                    continue
                raise last_exc
