import ipaddress
import re
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from microca.errors import ConfigurationError

_DOMAIN_RE = re.compile(r"^[A-Za-z0-9.*-]+$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MICROCA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Authority
    CA_KEY_PATH: Path = Path("microca-key.pem")
    CA_CERT_PATH: Path = Path("microca.pem")
    CA_NAME: str = "microca root"

    # Leaf request
    DOMAINS: list[str] = Field(default_factory=list)
    IP_ADDRESSES: list[str] = Field(default_factory=list)

    # Key algorithm (Ed25519 > RSA > ECDSA)
    USE_ED25519: bool = False
    USE_RSA: bool = False
    RSA_BITS: int = Field(default=4096, ge=1024)
    ECDSA_CURVE: str = "P256"

    # Reporting
    SHOW_EXPIRE: bool = False

    # Observability
    LOG_LEVEL: str = "WARNING"
    TELEMETRY_CONSOLE: bool = False

    @field_validator("DOMAINS")
    @classmethod
    def _check_domains(cls, value: list[str]) -> list[str]:
        for domain in value:
            # "." and ".." would name the working directory or its parent
            if not _DOMAIN_RE.match(domain) or not domain.strip("."):
                raise ValueError(f"invalid domain name {domain!r}")
        return value

    @field_validator("IP_ADDRESSES")
    @classmethod
    def _check_ip_addresses(cls, value: list[str]) -> list[str]:
        for ip in value:
            try:
                ipaddress.ip_address(ip)
            except ValueError:
                raise ValueError(f"invalid IP address {ip!r}") from None
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value!r}")
        return level


def load_settings(**overrides: Any) -> Settings:
    """Build the immutable settings from overrides plus the environment.

    Overrides set to None are ignored so unset command-line options fall
    through to environment variables and defaults.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"invalid configuration: {details}") from e
