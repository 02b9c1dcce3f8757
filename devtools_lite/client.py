"""Functional entry points used by page helpers.

    conn = await connect_browser("http://localhost:9222")
    await send_cdp(conn, "Page.enable")
    await send_cdp(conn, "Page.navigate", {"url": "https://example.com"})
    await conn.wait_for_load()
    await close(conn)
"""

from typing import Any, Mapping, Optional

from .config import Configuration
from .connection import CDPConnection
from .retry import RetryPolicy


async def connect_browser(
    endpoint: Optional[str] = None,
    *,
    config: Optional[Configuration] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> CDPConnection:
    """Connect to a Chrome debugging endpoint.

    Args:
        endpoint: ws:// page URL or http://host:port (default: from config)
        config: Settings to use (default: ~/.cdprc and CDP_* environment)
        retry_policy: Override of the configured connect retry policy

    Returns:
        Connected CDPConnection
    """
    if config is None:
        config = Configuration.load_default()
    conn = CDPConnection.from_config(config, endpoint=endpoint)
    return await conn.connect(retry_policy=retry_policy)


async def send_cdp(
    conn: CDPConnection,
    method: str,
    params: Optional[Mapping[str, Any]] = None,
    *,
    increment_id: bool = True,
    timeout: Optional[float] = None,
) -> dict:
    """Send one CDP command on conn and return its result."""
    return await conn.send(method, params, increment_id=increment_id, timeout=timeout)


async def close(conn: CDPConnection) -> None:
    await conn.close()
