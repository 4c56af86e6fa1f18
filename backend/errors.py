"""Exception types raised by the launcher."""


class LauncherError(Exception):
    """Base class for launcher failures."""


class ConfigError(LauncherError):
    """The configuration file could not be used."""


class NameCollisionError(LauncherError):
    """An advertised service name is already taken on the network."""


class SpawnError(LauncherError):
    """The game process could not be started."""
