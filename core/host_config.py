"""Host Configuration - Single Authority for Server and Host Browser

Mirrors OptionsConfig pattern. main.py and the Playwright tab host read
from here, never decide policy.

RESPONSIBILITY:
- Load host.yaml (server and browser sections)
- Provide get() singleton
- Expose an immutable HostSettings snapshot

DOES NOT:
- Bind sockets (CoordinatorServer's job)
- Launch anything (PlaywrightTabHost's job)
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional


BROWSERS = ("chromium", "chrome", "edge", "firefox")


@dataclass(frozen=True)
class HostSettings:
    """Immutable host configuration snapshot."""
    server_host: str
    server_port: int
    browser_enabled: bool
    default_browser: str  # one of BROWSERS
    headless: bool
    user_data_dir: str  # "auto" | "isolated" | path
    timeout_ms: int
    start_url: str


class HostConfig:
    """Singleton host configuration authority.

    Usage:
        settings = HostConfig.get().settings
        port = settings.server_port
    """

    _instance: Optional["HostConfig"] = None
    _settings: Optional[HostSettings] = None

    config_path = Path(__file__).parent.parent / "config" / "host.yaml"

    DEFAULTS: Dict[str, Dict[str, Any]] = {
        "server": {
            "host": "localhost",
            "port": 8765,
        },
        "browser": {
            "enabled": False,
            "default_browser": "chromium",
            "headless": False,
            "user_data_dir": "auto",
            "timeout_ms": 10000,
            "start_url": "about:blank",
        },
    }

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load()
        return cls._instance

    @classmethod
    def get(cls) -> "HostConfig":
        """Get singleton instance."""
        return cls()

    @property
    def settings(self) -> HostSettings:
        if self._settings is None:
            self._load()
        return self._settings

    def _load(self) -> None:
        """Load configuration from host.yaml."""
        raw_config: Dict[str, Any] = {}

        if self.config_path.exists():
            try:
                import yaml
                with open(self.config_path, encoding="utf-8") as f:
                    raw_config = yaml.safe_load(f) or {}
                    logging.info(f"Loaded host config from {self.config_path}")
            except Exception as e:
                logging.warning(f"Failed to load host.yaml: {e}, using defaults")
        else:
            logging.info(f"No host.yaml found at {self.config_path}, using defaults")

        server = {**self.DEFAULTS["server"], **(raw_config.get("server") or {})}
        browser = {**self.DEFAULTS["browser"], **(raw_config.get("browser") or {})}
        if browser["default_browser"] not in BROWSERS:
            logging.warning(f"Unknown browser {browser['default_browser']!r}, using chromium")
            browser["default_browser"] = "chromium"

        self._settings = HostSettings(
            server_host=str(server["host"]),
            server_port=int(server["port"]),
            browser_enabled=bool(browser["enabled"]),
            default_browser=browser["default_browser"],
            headless=bool(browser["headless"]),
            user_data_dir=str(browser["user_data_dir"]),
            timeout_ms=int(browser["timeout_ms"]),
            start_url=str(browser["start_url"] or ""),
        )

        logging.debug(f"HostConfig: {self._settings}")

    def reload(self) -> None:
        """Force reload configuration (for testing)."""
        self._load()
