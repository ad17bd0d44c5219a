"""Node configuration: defaults, JSON config file and OCFT_* environment overrides."""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

from peers.identity import load_or_create_identity
from peers.models import TrustedPeer

logger = logging.getLogger(__name__)

# --- Storage ---
CONFIG_DIR = Path(os.getenv("OCFT_CONFIG_DIR", str(Path.home() / ".ocft")))
CONFIG_FILE = CONFIG_DIR / "config.json"
IDENTITY_FILE = CONFIG_DIR / "identity.json"
TRUST_FILE = CONFIG_DIR / "trusted_peers.json"
DEFAULT_DOWNLOAD_DIR = str(Path.home() / "Downloads" / "ocft")

# --- Networking (host app) ---
API_HOST = "127.0.0.1"
API_PORT = 8765

# --- Transfer ---
DEFAULT_CHUNK_SIZE = 48 * 1024  # 48 KB, safe for base64 inside chat messages
DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024  # 100 MB

_ENV_PREFIX = "OCFT_"


class NodeConfig(BaseModel):
    """Per-node settings handed to the transfer engine at construction."""
    node_id: str
    secret: str
    # seconds an offer's secret stays valid; None disables the TTL
    secret_ttl: float | None = None
    download_dir: str = DEFAULT_DOWNLOAD_DIR
    # legacy: auto-accept any peer in the trust store with unexpired trust
    auto_accept: bool = False
    trusted_peers: list[TrustedPeer] = Field(default_factory=list)
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0)
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    log_level: str = "INFO"


def _env_overrides() -> dict:
    overrides: dict = {}
    for key in ("node_id", "secret", "download_dir", "log_level"):
        value = os.getenv(_ENV_PREFIX + key.upper())
        if value:
            overrides[key] = value
    for key in ("max_file_size", "chunk_size"):
        value = os.getenv(_ENV_PREFIX + key.upper())
        if value:
            overrides[key] = int(value)
    ttl = os.getenv(_ENV_PREFIX + "SECRET_TTL")
    if ttl:
        overrides["secret_ttl"] = float(ttl)
    auto = os.getenv(_ENV_PREFIX + "AUTO_ACCEPT")
    if auto:
        overrides["auto_accept"] = auto.lower() in ("1", "true", "yes")
    return overrides


def load_config(
    config_path: Path | None = None, identity_path: Path | None = None
) -> NodeConfig:
    """
    Load configuration from file and environment.

    Priority (highest first): OCFT_* environment variables, the JSON
    config file, defaults. A node id and secret that are set nowhere are
    taken from (or generated into) the identity file.
    """
    config_path = config_path or CONFIG_FILE
    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)
        logger.info(f"Loaded config from {config_path}")

    data.update(_env_overrides())

    if not data.get("node_id") or not data.get("secret"):
        identity = load_or_create_identity(identity_path or IDENTITY_FILE)
        data["node_id"] = data.get("node_id") or identity.node_id
        data["secret"] = data.get("secret") or identity.secret

    config = NodeConfig.model_validate(data)
    os.makedirs(config.download_dir, exist_ok=True)
    return config


def save_config(config: NodeConfig, config_path: Path | None = None) -> None:
    """Save configuration to a JSON file."""
    config_path = config_path or CONFIG_FILE
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        json.dump(config.model_dump(mode="json", by_alias=True), f, indent=2)
