"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides
- Configuration initialization and display
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from aznpm.core.exceptions import ConfigurationError, ValidationError
from aznpm.core.validation import validate_chain_name, validate_lock_wait


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/aznpm/config.yaml")
DEFAULT_AUDIT_LOG_PATH = Path("/var/log/aznpm/audit.log")


class IptablesConfig(BaseModel):
    """How the iptables tool is invoked and which shared chains are used."""

    command: str = "iptables"
    lock_wait_seconds: int = 60
    not_found_exit_code: int = 1
    forward_chain: str = "FORWARD"
    peer_chain: str = "KUBE-SERVICES"
    command_timeout: Optional[int] = None

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("command cannot be empty")
        return v

    @field_validator("lock_wait_seconds")
    @classmethod
    def validate_lock_wait_seconds(cls, v: int) -> int:
        try:
            return validate_lock_wait(v)
        except ValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("not_found_exit_code")
    @classmethod
    def validate_not_found_exit_code(cls, v: int) -> int:
        if not 1 <= v <= 255:
            raise ValueError("not_found_exit_code must be between 1 and 255")
        return v

    @field_validator("forward_chain", "peer_chain")
    @classmethod
    def validate_chain(cls, v: str) -> str:
        try:
            return validate_chain_name(v)
        except ValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("command_timeout")
    @classmethod
    def validate_command_timeout(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("command_timeout must be at least 1 second")
        return v


class AuditConfig(BaseModel):
    """Audit log configuration."""

    enabled: bool = True
    log_path: Path = DEFAULT_AUDIT_LOG_PATH


class NpmConfig(BaseModel):
    """Root configuration model, loaded from /etc/aznpm/config.yaml."""

    iptables: IptablesConfig = Field(default_factory=IptablesConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @classmethod
    def load(cls, path: Path) -> "NpmConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: aznpm config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run with sudo",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "NpmConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class EnvOverrides(BaseSettings):
    """Per-node overrides read from the environment.

    The agent's DaemonSet sets these; they win over the config file.
    """

    model_config = SettingsConfigDict(extra="ignore")

    iptables_command: Optional[str] = Field(None, alias="AZNPM_IPTABLES_COMMAND")
    peer_chain: Optional[str] = Field(None, alias="AZNPM_PEER_CHAIN")
    lock_wait_seconds: Optional[int] = Field(None, alias="AZNPM_LOCK_WAIT_SECONDS")

    def as_iptables_update(self) -> dict:
        update = {}
        if self.iptables_command:
            update["command"] = self.iptables_command
        if self.peer_chain:
            update["peer_chain"] = self.peer_chain
        if self.lock_wait_seconds is not None:
            update["lock_wait_seconds"] = self.lock_wait_seconds
        return update


class AppConfig:
    """Application configuration combining the config file and environment.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[NpmConfig] = None,
    ) -> None:
        """Initialize application configuration.

        Args:
            config_path: Path to config file (uses default if None)
            config: Pre-loaded config (skips file loading if provided)
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or NpmConfig.load_or_default(self.config_path)
        try:
            self._overrides = EnvOverrides()
            update = self._overrides.as_iptables_update()
            if update:
                merged = self._config.iptables.model_dump() | update
                self._config = self._config.model_copy(
                    update={"iptables": IptablesConfig(**merged)}
                )
        except Exception as e:
            raise ConfigurationError(
                f"Invalid environment override: {e}",
                hint="Check the AZNPM_* environment variables",
                details=[str(e)],
            ) from e

    @property
    def config(self) -> NpmConfig:
        """Get the merged configuration."""
        return self._config

    @property
    def overrides(self) -> EnvOverrides:
        """Get the environment overrides."""
        return self._overrides

    @property
    def iptables(self) -> IptablesConfig:
        """Shortcut to iptables config."""
        return self._config.iptables

    @property
    def audit(self) -> AuditConfig:
        """Shortcut to audit config."""
        return self._config.audit


def get_example_config() -> str:
    """Generate example configuration file content."""
    return """# Azure NPM iptables configuration
# Environment overrides: AZNPM_IPTABLES_COMMAND, AZNPM_PEER_CHAIN,
# AZNPM_LOCK_WAIT_SECONDS

iptables:
  command: iptables         # or iptables-nft / iptables-legacy
  lock_wait_seconds: 60     # passed as -w to every invocation
  not_found_exit_code: 1    # exit code meaning "rule/chain does not exist"
  forward_chain: FORWARD
  peer_chain: KUBE-SERVICES # AZURE-NPM is linked right after this jump
  # command_timeout: 120    # seconds, unset means wait forever

audit:
  enabled: true
  log_path: /var/log/aznpm/audit.log
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Args:
        path: Path to create config file
        force: Overwrite if exists

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())
    os.chmod(path, 0o644)
