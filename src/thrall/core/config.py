"""
Configuration - defaults shared by pages, waiters and the browser connection.
"""
from __future__ import annotations

from dataclasses import dataclass

# Seconds. A timeout of 0 or None at any call site means "use the default",
# never "fail immediately".
DEFAULT_TIMEOUT = 30.0
DEFAULT_POLLING_INTERVAL = 0.1
DEFAULT_NETWORK_IDLE_THRESHOLD = 0.5

LOAD_EVENTS = {
    "load": "Page.loadEventFired",
    "domcontentloaded": "Page.domContentEventFired",
    "networkidle": "Page.loadEventFired",
}


@dataclass
class BrowserConfig:
    """Configuration options for the Browser and the pages it opens."""

    host: str = "localhost"
    port: int = 9222
    default_timeout: float = DEFAULT_TIMEOUT
    polling_interval: float = DEFAULT_POLLING_INTERVAL
    wait_until: str = "load"
    network_idle_threshold: float = DEFAULT_NETWORK_IDLE_THRESHOLD
    viewport_width: int = 1280
    viewport_height: int = 720
    debug: bool = False

    def __post_init__(self) -> None:
        if self.wait_until not in LOAD_EVENTS:
            raise ValueError(
                f"Invalid wait_until: {self.wait_until}. "
                f"Use one of {', '.join(sorted(LOAD_EVENTS))}."
            )
        if self.default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        if self.polling_interval <= 0:
            raise ValueError("polling_interval must be positive")

    @property
    def debugger_url(self) -> str:
        return f"http://{self.host}:{self.port}"
