from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import boto3
from botocore.exceptions import ClientError


logger = logging.getLogger(__name__)

ENV_TIMEZONE = "RAMBUTAN_TIMEZONE"
ENV_STATE_BUCKET = "STATE_BUCKET"
ENV_STATE_KEY = "STATE_KEY"  # optional; defaults to "preferences.json"
ENV_PARAM_PREFIX = "PARAM_PREFIX"

# Midnight in Florida ends the day for everyone
DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_STATE_KEY = "preferences.json"


class ConfigError(RuntimeError):
    """Raised at startup when configuration is missing or invalid."""


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def require(v: Optional[str], what: str) -> str:
    if not v:
        raise ConfigError(f"Missing required configuration: {what}")
    return v


def load_timezone(name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA zone name, raising ConfigError rather than falling back."""
    if not name or not name.strip():
        raise ConfigError(f"{ENV_TIMEZONE} must name a time zone")
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError) as ex:
        raise ConfigError(f"Invalid time zone for {ENV_TIMEZONE}: {name!r}") from ex


@dataclass(frozen=True)
class Settings:
    timezone: ZoneInfo
    state_bucket: Optional[str] = None
    state_key: str = DEFAULT_STATE_KEY
    param_prefix: Optional[str] = None


def load_settings() -> Settings:
    """Read settings from the environment. Only the time zone is validated here;
    store locations are checked by the entry point that needs them."""
    settings = Settings(
        timezone=load_timezone(_getenv(ENV_TIMEZONE, DEFAULT_TIMEZONE)),
        state_bucket=_getenv(ENV_STATE_BUCKET),
        state_key=_getenv(ENV_STATE_KEY, DEFAULT_STATE_KEY) or DEFAULT_STATE_KEY,
        param_prefix=_getenv(ENV_PARAM_PREFIX),
    )
    logger.debug("Loaded settings: timezone=%s key=%s", settings.timezone.key, settings.state_key)
    return settings


def load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    """Fetch decrypted SSM parameters under `prefix`; missing ones map to None."""
    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in out:
        try:
            resp = ssm.get_parameter(Name=f"{prefix}{name}", WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                logger.warning("SSM parameter %s%s unavailable (%s)", prefix, name, code)
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


__all__ = [
    "ConfigError",
    "Settings",
    "load_settings",
    "load_ssm_params",
    "load_timezone",
    "require",
]
