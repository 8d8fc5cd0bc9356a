# spt/config.py
"""Settings loaded from `spt.yml`."""

from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError

CONFIG_FILE = "spt.yml"


class _Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class AuthConfig(_Section):
    login: str
    password: str


class BrowserConfig(_Section):
    channel: Optional[str] = "chrome"
    headless: bool = True
    args: List[str] = []
    timeout_ms: int = Field(default=30000, alias="timeout-ms", ge=0)


class EntityPermissions(_Section):
    view: List[str] = []
    edit: List[str] = []


class PermissionsConfig(_Section):
    user: EntityPermissions = EntityPermissions()
    group: EntityPermissions = EntityPermissions()
    owner: str = ""
    main_group: str = Field(default="", alias="main-group")
    private_account: bool = Field(default=False, alias="private-account")
    private_account_for_group: bool = Field(default=False, alias="private-account-for-group")


class DelaysConfig(_Section):
    """Settle delays in milliseconds."""
    after_login: int = Field(default=3000, alias="after-login", ge=0)
    after_redirect_to_edit: int = Field(default=2000, alias="after-redirect-to-edit", ge=0)
    after_page_change: int = Field(default=1000, alias="after-page-change", ge=0)
    after_tab_switch: int = Field(default=300, alias="after-tab-switch", ge=0)


class ProgressCacheConfig(_Section):
    get_accounts: int = Field(default=5, alias="get-accounts", ge=1)
    set_accounts: int = Field(default=5, alias="set-accounts", ge=1)
    directory: Path = Path(".")


class LoggingConfig(_Section):
    directory: Path = Path("storage")
    level: Literal["debug", "info", "warn", "error", "off"] = "info"


class AppConfig(_Section):
    syspass_url: str = Field(alias="syspass-url")
    auth: AuthConfig
    browser: BrowserConfig = BrowserConfig()
    ignore_errors: bool = Field(default=False, alias="ignore-errors")
    permissions: PermissionsConfig = PermissionsConfig()
    delays: DelaysConfig = DelaysConfig()
    progress_cache: ProgressCacheConfig = Field(default=ProgressCacheConfig(), alias="progress-cache")
    logging: LoggingConfig = LoggingConfig()

    @property
    def base_url(self) -> str:
        return self.syspass_url.rstrip("/")


def load_config(path: Path = None) -> AppConfig:
    """Load and validate settings from YAML."""
    config_path = Path(path or CONFIG_FILE)

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {config_path}") from exc
    except OSError as exc:
        raise ConfigError(f"couldn't read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in config file: {config_path}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"config file must contain a mapping: {config_path}")

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid config {config_path}: {exc}") from exc
