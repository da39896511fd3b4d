"""
Settings loading.

Settings come from a TOML file (explicit path, or ./shipledger.toml when
present), then environment overrides:

    SHIPLEDGER_DATA_DIR         data directory for ledger/documents/payments
    SHIPLEDGER_LOG_LEVEL        logging level name
    SHIPLEDGER_PAYMENT_TIMEOUT  payment gateway timeout in seconds

Example file:

    data_dir = ".shipledger"
    log_level = "INFO"

    [payment]
    timeout_seconds = 5
    amount = 250.0
    currency = "CAD"

    [[users]]
    username = "alice"
    role = "shipper"
    email = "alice@example.com"
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .access import Identity, Role
from .errors import ConfigError

DEFAULT_CONFIG_NAME = "shipledger.toml"
DEFAULT_DATA_DIR = Path(".shipledger")
ENV_PREFIX = "SHIPLEDGER_"


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class PaymentSettings:
    timeout_seconds: float = 5.0
    amount: float = 100.0
    currency: str = "USD"


@dataclass(frozen=True)
class Settings:
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "WARNING"
    payment: PaymentSettings = field(default_factory=PaymentSettings)
    users: tuple[Identity, ...] = ()

    @property
    def ledger_dir(self) -> Path:
        return self.data_dir / "ledger"

    @property
    def documents_dir(self) -> Path:
        return self.data_dir / "documents"

    @property
    def payments_path(self) -> Path:
        return self.data_dir / "payments.jsonl"


def _parse_level(value: Any) -> str:
    level = str(value).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"Unknown log level: {value!r}")
    return level


def _parse_positive(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {number}")
    return number


def _parse_users(raw: Any) -> tuple[Identity, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError("users must be an array of tables")
    users: list[Identity] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        username = str(entry.get("username", "")).strip()
        if not username:
            raise ConfigError("every user needs a username")
        try:
            role = Role.parse(str(entry.get("role", "")))
        except ValueError as e:
            raise ConfigError(f"user {username!r} has unknown role {entry.get('role')!r}") from e
        email = entry.get("email")
        users.append(Identity(username=username, role=role, email=str(email) if email else None))
    return tuple(users)


def settings_from_dict(data: Mapping[str, Any], *, base_dir: Path | None = None) -> Settings:
    """Build Settings from parsed TOML data. Relative data_dir resolves against base_dir."""
    data_dir = Path(str(data.get("data_dir", DEFAULT_DATA_DIR)))
    if base_dir is not None and not data_dir.is_absolute():
        data_dir = base_dir / data_dir

    payment_raw = _coerce_dict(data.get("payment"))
    payment = PaymentSettings(
        timeout_seconds=_parse_positive("payment.timeout_seconds", payment_raw.get("timeout_seconds", 5.0)),
        amount=_parse_positive("payment.amount", payment_raw.get("amount", 100.0)),
        currency=str(payment_raw.get("currency", "USD")).strip().upper() or "USD",
    )

    return Settings(
        data_dir=data_dir,
        log_level=_parse_level(data.get("log_level", "WARNING")),
        payment=payment,
        users=_parse_users(data.get("users")),
    )


def apply_env_overrides(settings: Settings, env: Mapping[str, str] | None = None) -> Settings:
    environ = os.environ if env is None else env
    data_dir = settings.data_dir
    log_level = settings.log_level
    payment = settings.payment

    if environ.get(f"{ENV_PREFIX}DATA_DIR"):
        data_dir = Path(environ[f"{ENV_PREFIX}DATA_DIR"])
    if environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
        log_level = _parse_level(environ[f"{ENV_PREFIX}LOG_LEVEL"])
    if environ.get(f"{ENV_PREFIX}PAYMENT_TIMEOUT"):
        payment = PaymentSettings(
            timeout_seconds=_parse_positive(
                f"{ENV_PREFIX}PAYMENT_TIMEOUT", environ[f"{ENV_PREFIX}PAYMENT_TIMEOUT"]
            ),
            amount=payment.amount,
            currency=payment.currency,
        )

    return Settings(data_dir=data_dir, log_level=log_level, payment=payment, users=settings.users)


def load_settings(
    path: Path | None = None,
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """
    Load settings from TOML plus environment overrides.

    Args:
        path: Explicit config file; must exist when given
        cwd: Directory searched for shipledger.toml when no path is given
        env: Environment mapping (defaults to os.environ)

    Raises:
        ConfigError: missing explicit file, invalid TOML, or invalid values
    """
    import tomllib

    base = cwd or Path.cwd()
    config_path = path
    if config_path is None:
        candidate = base / DEFAULT_CONFIG_NAME
        config_path = candidate if candidate.exists() else None
    elif not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    if config_path is None:
        settings = settings_from_dict({}, base_dir=base)
    else:
        try:
            data = tomllib.loads(config_path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
        settings = settings_from_dict(data, base_dir=config_path.parent)

    return apply_env_overrides(settings, env)
