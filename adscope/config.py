"""
adscope Configuration Module
============================

Centralized configuration management for the adscope collector.

Design Decision:
- Configuration is a set of dataclasses that can be passed through the
  collection pipeline; each component extracts the part it needs
- The LDAP page size is fixed at 500 entries per page
- Timeouts live here and are handed to the ldap3 connection only
"""

import os
from dataclasses import dataclass, field
from typing import Optional


PAGE_SIZE = 500
DEFAULT_TIMEOUT = 300


@dataclass
class LDAPConfig:
    """Configuration for LDAP data collection.

    Attributes:
        use_ssl: Whether to use LDAPS (port 636) vs LDAP (port 389)
        port: Explicit port, auto-detected from use_ssl when omitted
        page_size: Page size for LDAP queries
        timeout: Connection and receive timeout in seconds
    """
    use_ssl: bool = False
    port: Optional[int] = None  # Auto-detect based on use_ssl
    page_size: int = PAGE_SIZE
    timeout: Optional[int] = None

    def __post_init__(self):
        if self.port is None:
            self.port = 636 if self.use_ssl else 389
        if self.timeout is None:
            self.timeout = int(os.environ.get("ADSCOPE_LDAP_TIMEOUT", DEFAULT_TIMEOUT))


@dataclass
class HarvestConfig:
    """Configuration for the GPP credential harvester.

    Attributes:
        follow_symlinks: Whether to descend into symlinked directories
        sysvol_root: Local mount point of the SYSVOL share, if any
    """
    follow_symlinks: bool = False
    sysvol_root: Optional[str] = None


@dataclass
class OutputConfig:
    """Configuration for the text report.

    Attributes:
        show_inherited: Whether inherited ACEs are listed in ACL reports
    """
    show_inherited: bool = True


@dataclass
class AdscopeConfig:
    """Main configuration container.

    Usage:
        config = AdscopeConfig()  # Uses all defaults
        config = AdscopeConfig(ldap=LDAPConfig(use_ssl=True))
    """
    ldap: LDAPConfig = field(default_factory=LDAPConfig)
    harvest: HarvestConfig = field(default_factory=HarvestConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    verbose: bool = True

    @classmethod
    def from_dict(cls, config_dict: dict) -> "AdscopeConfig":
        """Create configuration from a dictionary (CLI or JSON input)."""
        return cls(
            ldap=LDAPConfig(**config_dict.get("ldap", {})),
            harvest=HarvestConfig(**config_dict.get("harvest", {})),
            output=OutputConfig(**config_dict.get("output", {})),
            verbose=config_dict.get("verbose", True)
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary for serialization."""
        from dataclasses import asdict
        return asdict(self)


# Default global configuration instance
_default_config: Optional[AdscopeConfig] = None


def get_config() -> AdscopeConfig:
    """Get the global configuration instance."""
    global _default_config
    if _default_config is None:
        _default_config = AdscopeConfig()
    return _default_config


def set_config(config: AdscopeConfig) -> None:
    """Set the global configuration instance."""
    global _default_config
    _default_config = config
