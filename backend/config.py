"""Application-wide configuration constants and the launcher config file loader."""

import configparser
import logging
import uuid
from pathlib import Path

from pydantic import BaseModel

from errors import ConfigError

logger = logging.getLogger(__name__)

# --- Discovery ---
CLIENT_SERVICE_TYPE = "_oe-doom-client._udp.local."
HOST_SERVICE_TYPE = "_oe-doom-host._udp.local."

WAD_KEY = "wad"
CAN_HOST_KEY = "can-host"

RESOLVE_TIMEOUT = 3.0  # seconds
CONNECTIVITY_CHECK_INTERVAL = 5  # seconds

# --- Game process ---
CHILD_KILL_TIMEOUT = 5.0  # seconds between SIGINT and SIGKILL

# --- Defaults ---
DEFAULT_CONFIG_PATH = "/etc/oe-zdoom/config.ini"
DEFAULT_ZDOOM = "zdoom"
DEFAULT_MP_WAD = "freedm.wad"
DEFAULT_MP_MAP = "MAP01"
DEFAULT_SP_WAD = "freedoom1.wad"
DEFAULT_PORT = 5029
DEFAULT_SOURCE_WAIT = 30  # seconds
DEFAULT_STATUS_HOST = "127.0.0.1"

_MACHINE_ID_FILES = (
    Path("/etc/machine-id"),
    Path("/var/lib/dbus/machine-id"),
)


class LauncherConfig(BaseModel):
    """Settings read from the launcher INI file."""
    zdoom: str = DEFAULT_ZDOOM
    port: int = DEFAULT_PORT
    mp_wad: str = DEFAULT_MP_WAD
    mp_map: str = DEFAULT_MP_MAP
    mp_config: str | None = None
    sp_wad: str = DEFAULT_SP_WAD
    sp_config: str | None = None
    can_host: bool = True
    source_wait: float = DEFAULT_SOURCE_WAIT
    status_host: str = DEFAULT_STATUS_HOST
    status_port: int = 0  # 0 disables the status API


def machine_id() -> str:
    """Return a stable identifier for this machine."""
    for path in _MACHINE_ID_FILES:
        try:
            value = path.read_text().strip()
        except OSError:
            continue
        if value:
            return value

    # No systemd/dbus id; derive one from the hardware address
    return uuid.UUID(int=uuid.getnode()).hex


def _positive_int(parser: configparser.ConfigParser, section: str, key: str) -> int | None:
    try:
        value = parser.getint(section, key, fallback=0)
    except ValueError:
        logger.warning(f"Ignoring non-integer [{section}] {key}")
        return None
    return value if value > 0 else None


def load_config(path: str = DEFAULT_CONFIG_PATH, explicit: bool = False) -> LauncherConfig:
    """
    Load the launcher configuration from an INI file.

    A missing or unreadable file falls back to the built-in defaults, unless
    the path was given explicitly, in which case ConfigError is raised.
    """
    config = LauncherConfig()
    parser = configparser.ConfigParser(interpolation=None)

    try:
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)
    except (OSError, configparser.Error) as e:
        if explicit:
            raise ConfigError(f"Cannot open {path}: {e}") from e
        logger.warning(f"Cannot open {path}: {e}. Using defaults.")
        return config

    config.zdoom = parser.get("general", "zdoom", fallback=config.zdoom)

    config.mp_wad = parser.get("multiplayer", "wad", fallback=config.mp_wad)
    config.mp_map = parser.get("multiplayer", "map", fallback=config.mp_map)
    config.mp_config = parser.get("multiplayer", "config", fallback=config.mp_config)
    config.sp_wad = parser.get("singleplayer", "wad", fallback=config.sp_wad)
    config.sp_config = parser.get("singleplayer", "config", fallback=config.sp_config)

    try:
        config.can_host = parser.getboolean("multiplayer", "can-host", fallback=True)
    except ValueError:
        logger.warning("Ignoring invalid [multiplayer] can-host, assuming true")
        config.can_host = True

    port = _positive_int(parser, "multiplayer", "port")
    if port:
        config.port = port

    wait = _positive_int(parser, "multiplayer", "wait")
    if wait:
        config.source_wait = wait

    config.status_host = parser.get("status", "host", fallback=config.status_host)
    status_port = _positive_int(parser, "status", "port")
    if status_port:
        config.status_port = status_port

    logger.info(f"Loaded configuration from {path}")
    return config
