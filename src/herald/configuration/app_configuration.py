from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from herald.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

# Built-in welcome backgrounds, overridable under welcome_image.backgrounds
DEFAULT_BACKGROUNDS: Dict[str, str] = {
    "default": "https://i.imgur.com/qNxO3gR.png",
    "forest": "https://i.imgur.com/2JXI37J.jpg",
    "city": "https://i.imgur.com/3Dy7tJv.jpg",
    "abstract": "https://i.imgur.com/0udsGMg.jpg",
}

DEFAULT_BOLD_FONT = "DejaVuSans-Bold.ttf"
DEFAULT_REGULAR_FONT = "DejaVuSans.ttf"


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed shortcuts for the database location, upload directory, network
    timeout and welcome image assets. Every shortcut falls back to a sensible
    default when the key is missing or malformed.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            logger.warning("[APP CONFIGURATION] Config file %s does not contain a mapping; ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping (do not mutate)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Location of the SQLite configuration store."""
        return Path(str(self._section("database").get("path") or "./data/app.db")).resolve()

    @property
    def uploads_dir(self) -> Path:
        """Directory that holds custom welcome backgrounds uploaded by admins."""
        return Path(str(self._section("uploads").get("directory") or "./uploads")).resolve()

    @property
    def network_timeout(self) -> float:
        """Timeout in seconds for outbound calls (image downloads, message sends).

        Default is 10 seconds.
        """
        value = self._section("network").get("timeout_seconds", 10.0)
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Invalid network.timeout_seconds %r; using 10s", value)
            return 10.0
        return timeout if timeout > 0 else 10.0

    @property
    def welcome_backgrounds(self) -> Dict[str, str]:
        """Named welcome backgrounds (name -> URL or file path).

        Entries from the config file override the built-ins; the ``default``
        entry is always present.
        """
        backgrounds = dict(DEFAULT_BACKGROUNDS)
        configured = self._section("welcome_image").get("backgrounds", {})
        if isinstance(configured, dict):
            for name, source in configured.items():
                if source:
                    backgrounds[str(name).lower()] = str(source)
        return backgrounds

    @property
    def bold_font(self) -> str:
        fonts = self._section("welcome_image").get("fonts", {})
        return str((fonts or {}).get("bold") or DEFAULT_BOLD_FONT) if isinstance(fonts, dict) else DEFAULT_BOLD_FONT

    @property
    def regular_font(self) -> str:
        fonts = self._section("welcome_image").get("fonts", {})
        return str((fonts or {}).get("regular") or DEFAULT_REGULAR_FONT) if isinstance(fonts, dict) else DEFAULT_REGULAR_FONT

    @property
    def presence_activity(self) -> str:
        """Text shown in the bot's "Watching ..." presence."""
        return str(self._section("presence").get("activity") or "Logging & Welcoming")


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
