from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
import fcntl
import os
from typing import Any, Dict, List
import yaml

from modshield.configuration.media_settings import MediaSettings
from modshield.datatypes.discord_datatypes import ChannelID, RoleID
from modshield.errors import ConfigurationError
from modshield.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML tuning file.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed properties for the screening, media and review sections. A missing
    or unreadable file yields an empty mapping so every property falls back
    to its default.
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
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.warning("[CONFIG] Config file %s not found; using defaults.", self.config_path)
        except Exception as exc:
            logger.error("[CONFIG] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file, replace the in-memory cache and return it."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def media(self) -> MediaSettings:
        return MediaSettings(self._section("media"))

    @property
    def trusted_role_ids(self) -> List[RoleID]:
        """Roles whose holders are never screened."""
        raw = self._section("screening").get("trusted_role_ids") or []
        role_ids: List[RoleID] = []
        for value in raw:
            try:
                role_ids.append(RoleID(value))
            except ValueError:
                logger.warning("[CONFIG] Ignoring invalid trusted role id %r", value)
        return role_ids

    @property
    def allowlist_duration(self) -> timedelta:
        hours = float(self._section("screening").get("allowlist_duration_hours", 24))
        return timedelta(hours=hours)

    @property
    def decision_timeout(self) -> timedelta:
        hours = float(self._section("review").get("decision_timeout_hours", 24))
        return timedelta(hours=hours)

    @property
    def ban_delete_message_days(self) -> int:
        return int(self._section("review").get("ban_delete_message_days", 3))

    @property
    def ban_reason(self) -> str:
        return str(self._section("review").get("ban_reason") or "Sending phishing links")


@dataclass(frozen=True, slots=True)
class BotSettings:
    """Identifiers and switches read from the process environment.

    Attributes:
        mod_channel_id: Channel receiving moderator reports and evidence.
        mod_role_id: Role mentioned on every report.
        muted_role_id: Role applied to a suspected offender.
        media_scan_enabled: Whether image/GIF/video screening runs at all.
    """
    mod_channel_id: ChannelID
    mod_role_id: RoleID
    muted_role_id: RoleID
    media_scan_enabled: bool = False

    @classmethod
    def from_env(cls, environ: Dict[str, str] | None = None) -> "BotSettings":
        """Build settings from ``environ`` (defaults to ``os.environ``).

        Raises:
            ConfigurationError: If a required id is missing or not an integer.
        """
        env = os.environ if environ is None else environ

        def required(name: str, wrapper):
            value = env.get(name)
            if not value:
                raise ConfigurationError(f"'{name}' environment variable not set", {"variable": name})
            try:
                return wrapper(value)
            except ValueError as exc:
                raise ConfigurationError(
                    f"'{name}' must be a Discord id, got {value!r}", {"variable": name}
                ) from exc

        return cls(
            mod_channel_id=required("MOD_CHANNEL", ChannelID),
            mod_role_id=required("MOD_ROLE", RoleID),
            muted_role_id=required("MUTED_ROLE", RoleID),
            media_scan_enabled="true" in (env.get("NSFW_FILTER_ENABLED") or ""),
        )


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
