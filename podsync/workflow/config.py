"""Configuration for feed synchronization.

Provides environment-based configuration for worker pool sizes, retry
limits, and HTTP timeouts.
"""

import os
from dataclasses import dataclass
from typing import Optional

from ..errors import ConfigError


def _get_int_env(
    name: str,
    default: int,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """Parse an integer from an environment variable with validation.

    Args:
        name: Environment variable name.
        default: Default value if env var is not set.
        min_val: Minimum allowed value (inclusive), or None for no minimum.
        max_val: Maximum allowed value (inclusive), or None for no maximum.

    Returns:
        The parsed and validated integer value.

    Raises:
        ConfigError: If the value cannot be parsed as an integer or is out of range.
    """
    raw = os.getenv(name)
    if raw is None:
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(
            f"Invalid value for {name}: '{raw}' is not a valid integer"
        )

    if min_val is not None and value < min_val:
        raise ConfigError(
            f"Invalid value for {name}: {value} must be >= {min_val}"
        )

    if max_val is not None and value > max_val:
        raise ConfigError(
            f"Invalid value for {name}: {value} must be <= {max_val}"
        )

    return value


@dataclass
class SyncConfig:
    """Configuration for feed fetching and synchronization.

    All settings can be overridden via environment variables.
    """

    # Worker pool sizes
    refresh_workers: int = 4  # Interactive refresh of existing subscriptions
    import_workers: int = 10  # Bulk OPML import

    # Feed client settings
    max_retries: int = 3  # Total fetch attempts per feed
    connect_timeout_seconds: int = 5
    read_timeout_seconds: int = 20

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Create configuration from environment variables.

        Returns:
            SyncConfig instance with values from environment or defaults.

        Raises:
            ConfigError: If any environment variable has an invalid value.
        """
        return cls(
            refresh_workers=_get_int_env(
                "SYNC_REFRESH_WORKERS", 4, min_val=1, max_val=64
            ),
            import_workers=_get_int_env(
                "SYNC_IMPORT_WORKERS", 10, min_val=1, max_val=64
            ),
            max_retries=_get_int_env("SYNC_MAX_RETRIES", 3, min_val=1),
            connect_timeout_seconds=_get_int_env(
                "SYNC_CONNECT_TIMEOUT", 5, min_val=1
            ),
            read_timeout_seconds=_get_int_env(
                "SYNC_READ_TIMEOUT", 20, min_val=1
            ),
        )
