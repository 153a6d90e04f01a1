"""ID generation utilities for HealSync.

This module provides utilities for generating resource identifiers.
"""

import uuid
from typing import Optional

# Namespace for ids derived from other ids (e.g. an encounter's diagnosis)
HEALSYNC_NAMESPACE = uuid.UUID("6f1c9a52-3b4e-4c41-9d0e-58f1a2b7c3d9")


def generate_id(prefix: Optional[str] = None) -> str:
    """Generate a unique ID with optional prefix.

    Args:
        prefix: Optional prefix for the ID

    Returns:
        Generated unique ID
    """
    base_id = str(uuid.uuid4())

    if prefix:
        return f"{prefix}_{base_id}"

    return base_id


def derive_id(*parts: str) -> str:
    """Derive a stable UUID from the given parts.

    The same parts always produce the same id.
    """
    return str(uuid.uuid5(HEALSYNC_NAMESPACE, "/".join(parts)))
