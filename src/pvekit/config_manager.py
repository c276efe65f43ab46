"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores the Proxmox API endpoint, API token and cache tuning.

Security:
- Config file permissions: 0600 (owner read/write only)
- Path validation
- Token secret never logged
"""

import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for older Python versions
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

try:
    import tomlkit
except ImportError as e:
    raise ImportError("tomlkit library not available. Install with: pip install tomlkit") from e

logger = logging.getLogger(__name__)

# Environment variable -> config attribute
ENV_OVERRIDES = {
    "PVEKIT_API_URL": "api_url",
    "PVEKIT_TOKEN_ID": "token_id",
    "PVEKIT_TOKEN_SECRET": "token_secret",  # noqa: S105 - env var name, not a secret
    "PVEKIT_VERIFY_SSL": "verify_ssl",
    "PVEKIT_TIMEOUT": "timeout",
}


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class PvekitConfig:
    """pvekit configuration data."""

    api_url: str | None = None  # e.g. https://pve.example.com:8006
    token_id: str | None = None  # user@realm!tokenname
    token_secret: str | None = None
    verify_ssl: bool = True
    timeout: float = 30.0
    default_resource_ttl: float = 60.0  # TTL for resource kinds other than vm/storage
    vmid_reservation_ttl: float = 300.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data = asdict(self)
        # Filter out None values as TOML doesn't support them
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PvekitConfig":
        """Create from dictionary."""
        return cls(
            api_url=data.get("api_url"),
            token_id=data.get("token_id"),
            token_secret=data.get("token_secret"),
            verify_ssl=bool(data.get("verify_ssl", True)),
            timeout=float(data.get("timeout", 30.0)),
            default_resource_ttl=float(data.get("default_resource_ttl", 60.0)),
            vmid_reservation_ttl=float(data.get("vmid_reservation_ttl", 300.0)),
        )

    def __repr__(self) -> str:
        secret = "***" if self.token_secret else None
        return (
            f"PvekitConfig(api_url={self.api_url!r}, token_id={self.token_id!r}, "
            f"token_secret={secret!r}, verify_ssl={self.verify_ssl}, timeout={self.timeout})"
        )


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConfigManager:
    """Manage pvekit configuration file.

    Configuration is stored at ~/.pvekit/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".pvekit"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def _validate_config_path(cls, path: Path) -> Path:
        """Validate configuration file path for security.

        Args:
            path: Path to validate (must be resolved)

        Returns:
            Validated path

        Raises:
            ConfigError: If path is outside allowed directories
        """
        resolved_path = path.resolve()

        # Allowed directories:
        # 1. ~/.pvekit/ (primary config directory)
        # 2. Current working directory
        # 3. System temporary directory (for testing)
        allowed_dirs = [
            cls.DEFAULT_CONFIG_DIR.resolve(),
            Path.cwd().resolve(),
            Path(tempfile.gettempdir()).resolve(),
        ]

        for allowed_dir in allowed_dirs:
            try:
                resolved_path.relative_to(allowed_dir)
                return resolved_path
            except ValueError:
                continue

        raise ConfigError(
            f"Config path outside allowed directories: {resolved_path}\n"
            f"Allowed directories:\n"
            f"  - {cls.DEFAULT_CONFIG_DIR}\n"
            f"  - {Path.cwd()}\n"
            "This restriction prevents path traversal attacks."
        )

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Args:
            custom_path: Custom config file path (optional)

        Returns:
            Path to config file

        Raises:
            ConfigError: If path is invalid or outside allowed directories
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            path = cls._validate_config_path(path)
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Ensure config directory exists with secure permissions.

        Raises:
            ConfigError: If directory creation fails
        """
        try:
            cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
            logger.debug(f"Config directory ready: {cls.DEFAULT_CONFIG_DIR}")
            return cls.DEFAULT_CONFIG_DIR

        except Exception as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e

    @classmethod
    def apply_environment(cls, config: PvekitConfig) -> PvekitConfig:
        """Override config values from PVEKIT_* environment variables.

        Raises:
            ConfigError: If a numeric override is not a number
        """
        for env_name, attr_name in ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None or raw == "":
                continue

            if attr_name == "verify_ssl":
                config.verify_ssl = _parse_bool(raw)
            elif attr_name == "timeout":
                try:
                    config.timeout = float(raw)
                except ValueError as e:
                    raise ConfigError(f"Invalid {env_name}: {raw!r}") from e
            else:
                setattr(config, attr_name, raw)

            logger.debug(f"Config override from environment: {env_name}")

        return config

    @classmethod
    def load_config(cls, custom_path: str | None = None, apply_env: bool = True) -> PvekitConfig:
        """Load configuration from file, then apply environment overrides.

        Args:
            custom_path: Custom config file path (optional)
            apply_env: Apply PVEKIT_* environment overrides (default: True)

        Returns:
            PvekitConfig object

        Raises:
            ConfigError: If loading fails
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            config = PvekitConfig()
            return cls.apply_environment(config) if apply_env else config

        try:
            stat = config_path.stat()
            mode = stat.st_mode & 0o777

            if mode & 0o077:  # Check if group/other have any permissions
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)  # type: ignore[attr-defined]

            logger.debug(f"Loaded config from: {config_path}")
            config = PvekitConfig.from_dict(data)  # type: ignore[arg-type]

        except Exception as e:
            raise ConfigError(f"Failed to load config: {e}") from e

        return cls.apply_environment(config) if apply_env else config

    @classmethod
    def save_config(cls, config: PvekitConfig, custom_path: str | None = None) -> None:
        """Save configuration to file.

        Args:
            config: Configuration to save
            custom_path: Custom config file path (optional)

        Raises:
            ConfigError: If saving fails or path is outside allowed directories
        """
        temp_path: Path | None = None
        try:
            if custom_path:
                config_path = Path(custom_path).expanduser().resolve()
                config_path = cls._validate_config_path(config_path)
                config_path.parent.mkdir(parents=True, exist_ok=True)
            else:
                cls.ensure_config_dir()
                config_path = cls.DEFAULT_CONFIG_FILE

            # tomlkit preserves comments of an existing file
            temp_path = config_path.with_suffix(".tmp")

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            values = config.to_dict()
            for f in fields(config):
                if f.name not in values and f.name in doc:
                    del doc[f.name]
            for key, value in values.items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")

        except Exception as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def update_config(cls, custom_path: str | None = None, **updates: Any) -> PvekitConfig:
        """Update configuration values.

        Raises:
            ConfigError: If a key is unknown or saving fails
        """
        # Environment overrides are not persisted
        config = cls.load_config(custom_path, apply_env=False)
        known = {f.name for f in fields(config)}

        for key, value in updates.items():
            if key not in known:
                raise ConfigError(f"Unknown config key: {key}")
            setattr(config, key, value)

        cls.save_config(config, custom_path)
        return config


__all__ = ["ENV_OVERRIDES", "ConfigError", "ConfigManager", "PvekitConfig"]
