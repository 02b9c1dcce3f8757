"""
Target discovery over Chrome's HTTP metadata endpoint.

Turns an ``http://host:port`` debugging address into the
``ws://host:port/devtools/page/<id>`` URL the connection speaks to.
"""

import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional

from .exceptions import CDPError, CDPTargetNotFoundError


class Target:
    """
    A debuggable Chrome target (page, worker, service worker, iframe).

    Attributes:
        id: Unique target ID
        type: Target type ("page", "iframe", "worker", "service_worker", "browser")
        title: Page title or worker name
        url: Target URL
        webSocketDebuggerUrl: CDP WebSocket URL for this target
    """

    def __init__(self, target_data: Dict[str, Any]):
        self.id = target_data["id"]
        self.type = target_data["type"]
        self.title = target_data.get("title", "")
        self.url = target_data.get("url", "")
        self.webSocketDebuggerUrl = target_data.get("webSocketDebuggerUrl", "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "url": self.url,
            "webSocketDebuggerUrl": self.webSocketDebuggerUrl,
        }

    def __repr__(self):
        return f"Target(id={self.id!r}, type={self.type!r}, url={self.url!r})"


class BrowserEndpoint:
    """
    Chrome's HTTP debugging endpoint.

    Usage:
        endpoint = BrowserEndpoint("localhost", 9222)
        page = endpoint.first_page()
        conn = CDPConnection(page.webSocketDebuggerUrl)

    Attributes:
        chrome_host: Chrome host (default: "localhost")
        chrome_port: Chrome debugging port (default: 9222)
        timeout: HTTP request timeout in seconds (default: 5s)
    """

    def __init__(
        self,
        chrome_host: str = "localhost",
        chrome_port: int = 9222,
        timeout: float = 5.0,
        scheme: str = "http",
    ):
        if not 1 <= chrome_port <= 65535:
            raise ValueError(f"chrome_port must be 1-65535, got {chrome_port}")

        self.chrome_host = chrome_host
        self.chrome_port = chrome_port
        self.timeout = timeout
        self.scheme = scheme

    @classmethod
    def from_url(cls, url: str, timeout: float = 5.0) -> "BrowserEndpoint":
        """Build from an ``http(s)://host:port`` address."""
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError(f"Invalid debugging endpoint: {url}")
        default_port = 443 if parsed.scheme == "https" else 9222
        return cls(
            parsed.hostname,
            parsed.port or default_port,
            timeout=timeout,
            scheme=parsed.scheme,
        )

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.chrome_host}:{self.chrome_port}"

    def list_targets(
        self,
        target_type: Optional[str] = None,
        url_pattern: Optional[str] = None,
    ) -> List[Target]:
        """
        Fetch targets with optional filtering.

        Args:
            target_type: Filter by target type ("page", "iframe", "worker", ...)
            url_pattern: Case-insensitive substring the target URL must contain

        Raises:
            CDPError: If HTTP endpoint is unreachable or returns invalid data
        """
        endpoint_url = f"{self.base_url}/json/list"

        try:
            with urllib.request.urlopen(endpoint_url, timeout=self.timeout) as response:
                targets_data = json.loads(response.read())
        except urllib.error.URLError as e:
            raise CDPError(
                f"Failed to connect to Chrome at {endpoint_url}: {e}",
                details={
                    "chrome_host": self.chrome_host,
                    "chrome_port": self.chrome_port,
                    "recovery": "Ensure Chrome is running with --remote-debugging-port",
                },
            ) from e
        except json.JSONDecodeError as e:
            raise CDPError(
                f"Invalid JSON response from Chrome endpoint: {e}",
                details={"endpoint": endpoint_url},
            ) from e

        targets = [Target(data) for data in targets_data]

        if target_type:
            targets = [t for t in targets if t.type == target_type]

        if url_pattern:
            url_pattern_lower = url_pattern.lower()
            targets = [t for t in targets if url_pattern_lower in t.url.lower()]

        return targets

    def get_target_by_id(self, target_id: str) -> Optional[Target]:
        for target in self.list_targets():
            if target.id == target_id:
                return target
        return None

    def first_page(self) -> Target:
        """
        Return the first page target that exposes a WebSocket URL.

        Raises:
            CDPTargetNotFoundError: If no page targets found
        """
        pages = [t for t in self.list_targets(target_type="page") if t.webSocketDebuggerUrl]
        if not pages:
            raise CDPTargetNotFoundError(
                "No page targets found",
                details={
                    "chrome_host": self.chrome_host,
                    "chrome_port": self.chrome_port,
                    "recovery": "Navigate to a URL in Chrome or check --remote-debugging-port",
                },
            )
        return pages[0]


def resolve_ws_url(endpoint: str, timeout: float = 5.0) -> str:
    """Return the WebSocket URL to connect to for endpoint.

    ``ws://`` and ``wss://`` URLs are returned unchanged; ``http(s)://``
    addresses are resolved to their first page target.
    """
    if endpoint.startswith(("ws://", "wss://")):
        return endpoint
    return BrowserEndpoint.from_url(endpoint, timeout=timeout).first_page().webSocketDebuggerUrl
