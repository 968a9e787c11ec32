"""
Configuration module for the cars gateway app.

Centralizes environment settings, loads the organization config file and
resolves which organization this process acts for.
"""

import json
import os
import re
from pathlib import Path
from typing import Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gatewayclient import CallTimeouts

from .errors import ConfigLoadError

# ============================================================
# Environment Configuration
# ============================================================

APP_CONFIG_PATH = os.getenv("APP_CONFIG_PATH", "app_config.json")

# Organization selection; prompt on stdin when unset
ORG_SELECTION = os.getenv("CARS_APP_ORG")

# HTTP listener
HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))

# Gateway call timeouts (seconds)
EVALUATE_TIMEOUT = float(os.getenv("EVALUATE_TIMEOUT", "5"))
ENDORSE_TIMEOUT = float(os.getenv("ENDORSE_TIMEOUT", "15"))
SUBMIT_TIMEOUT = float(os.getenv("SUBMIT_TIMEOUT", "5"))
COMMIT_STATUS_TIMEOUT = float(os.getenv("COMMIT_STATUS_TIMEOUT", "60"))
CONNECT_TIMEOUT = float(os.getenv("CONNECT_TIMEOUT", "10"))

# strict: remote failures map to 502/504; compat: always 200
FAILURE_STATUS_MODE = os.getenv("FAILURE_STATUS_MODE", "strict")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "true").lower() in ("1", "true", "yes")
LOG_FILE = os.getenv("LOG_FILE") or None


# ============================================================
# Config File Models
# ============================================================

class OrgConfig(BaseModel):
    """Connection and credential settings for one organization."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    msp_id: str = Field(alias="mspID", min_length=1)
    cert_path: str = Field(alias="certPath", min_length=1)
    key_path: str = Field(alias="keyPath", min_length=1)
    tls_cert_path: str = Field(alias="tlsCertPath", min_length=1)
    peer_endpoint: str = Field(alias="peerEndpoint", min_length=1)
    gateway_peer: str = Field(alias="gatewayPeer", min_length=1)


class AppConfig(BaseModel):
    """Top-level application config loaded from app_config.json."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    orgs: Dict[str, OrgConfig]
    channel_name: str = Field(alias="channelName", min_length=1)
    chaincode_name: str = Field(alias="chaincodeName", min_length=1)


def load_app_config(path: Optional[str] = None) -> AppConfig:
    """
    Load and validate the application config file.

    Raises:
        ConfigLoadError: If the file is missing, unreadable or invalid
    """
    p = Path(path or APP_CONFIG_PATH)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigLoadError(f"Config file not found: {p}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"Could not open the config file {p}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(f"Invalid JSON in config file {p}: {exc}") from exc

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigLoadError(f"Invalid config file {p}: {exc}") from exc


# ============================================================
# Organization Selection
# ============================================================

ORG_CHOICES: Dict[str, str] = {
    "1": "org1",
    "2": "org2",
    "3": "org3",
    "4": "org4",
}
DEFAULT_ORG = "org1"

_LEADING_INT = re.compile(r"([+-]?\d+)")

ORG_MENU = (
    "Choose your organization by entering a number:\n"
    "1 - org1\n2 - org2\n3 - org3\n4 - org4\n"
    "Anything else defaults to 1"
)


def resolve_org_key(choice: Optional[str]) -> str:
    """
    Map an operator choice to an org key.

    Accepts an org key ("org1".."org4") or a menu number. A number is read
    from the leading integer of the input, so "02", "+2" and "2abc" all
    select org2. Anything else, including non-numeric input, is the
    default org.
    """
    if choice is None:
        return DEFAULT_ORG
    choice = choice.strip()
    if choice in ORG_CHOICES.values():
        return choice
    match = _LEADING_INT.match(choice)
    if match is None:
        return DEFAULT_ORG
    return ORG_CHOICES.get(str(int(match.group(1))), DEFAULT_ORG)


def select_org(app_config: AppConfig, choice: Optional[str]) -> OrgConfig:
    """
    Resolve the organization this process acts for.

    Raises:
        ConfigLoadError: If the resolved organization is not in the config
    """
    key = resolve_org_key(choice)
    org = app_config.orgs.get(key)
    if org is None:
        raise ConfigLoadError(
            f"Organization '{key}' is not defined in config (known: {sorted(app_config.orgs)})"
        )
    return org


def prompt_org_selection(
    app_config: AppConfig,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> str:
    """Ask the operator for an organization and return the resolved org key."""
    output_fn(ORG_MENU)
    try:
        choice = input_fn("")
    except EOFError:
        choice = ""
    key = resolve_org_key(choice)
    select_org(app_config, choice)
    return key


def call_timeouts() -> CallTimeouts:
    """Fixed gateway call timeouts from the environment."""
    return CallTimeouts(
        evaluate=EVALUATE_TIMEOUT,
        endorse=ENDORSE_TIMEOUT,
        submit=SUBMIT_TIMEOUT,
        commit_status=COMMIT_STATUS_TIMEOUT,
    )


def strict_failure_status() -> bool:
    """Check if remote failures are reported with non-200 status codes."""
    return FAILURE_STATUS_MODE.lower() != "compat"


def validate_org_paths(org: OrgConfig) -> Dict[str, bool]:
    """
    Check that the credential paths of an organization exist.
    Returns dict of name -> exists.
    """
    return {
        "certPath": Path(org.cert_path).is_file(),
        "keyPath": Path(org.key_path).is_dir(),
        "tlsCertPath": Path(org.tls_cert_path).is_file(),
    }
