"""
Identity service: this node's id and secret.

The identity is generated once and kept in the config directory so the
node id peers trust stays stable across restarts.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from peers.models import NodeIdentity
from security.crypto import generate_node_id, generate_secret, secret_fingerprint

logger = logging.getLogger(__name__)


def new_identity() -> NodeIdentity:
    return NodeIdentity(
        node_id=generate_node_id(),
        secret=generate_secret(),
        created_at=datetime.now(timezone.utc).isoformat(),
    )


def load_or_create_identity(path: Path, force: bool = False) -> NodeIdentity:
    """Loads the existing identity or creates (and stores) a new one."""
    if path.exists() and not force:
        try:
            identity = NodeIdentity.model_validate(json.loads(path.read_text()))
            logger.info(f"Loaded node identity {identity.node_id}")
            return identity
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to load existing identity: {e}. Generating new one.")

    identity = new_identity()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(identity.model_dump(by_alias=True), indent=2))
    logger.info(
        f"Initialized node {identity.node_id} "
        f"(secret {secret_fingerprint(identity.secret)})"
    )
    return identity
