"""Bundle assembly.

Bundles are transient: they are built on demand for exports and query
responses and never persisted.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from ..core.exceptions import ValidationError
from ..utils.datetime_utils import to_fhir_instant
from ..utils.id_generator import generate_id
from .fhir_base import FHIRJson

logger = logging.getLogger(__name__)

BUNDLE_TYPES = (
    "document",
    "message",
    "transaction",
    "transaction-response",
    "batch",
    "batch-response",
    "history",
    "searchset",
    "collection",
)


def full_url(resource: FHIRJson) -> str:
    """Entry URN derived from the resource id alone."""
    resource_id = resource.get("id")
    if not resource_id:
        raise ValidationError(
            f"{resource.get('resourceType', 'Resource')} has no id",
            errors=["Bundle entries require a resource id"],
        )
    return f"urn:uuid:{resource_id}"


def assemble_bundle(
    resources: Sequence[FHIRJson],
    bundle_type: str = "collection",
    bundle_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> FHIRJson:
    """Wrap resources in a Bundle, keeping their order.

    Args:
        resources: Resources to include, in output order
        bundle_type: FHIR bundle type
        bundle_id: Bundle id; generated when omitted
        timestamp: Bundle timestamp; now when omitted

    Returns:
        Bundle JSON. An empty resource list yields an empty ``entry`` list.
    """
    if bundle_type not in BUNDLE_TYPES:
        raise ValueError(f"Unknown bundle type: {bundle_type}")

    entries: List[FHIRJson] = [
        {"fullUrl": full_url(resource), "resource": resource}
        for resource in resources
    ]

    bundle: FHIRJson = {
        "resourceType": "Bundle",
        "id": bundle_id or generate_id(),
        "type": bundle_type,
        "timestamp": to_fhir_instant(timestamp),
    }
    if bundle_type == "searchset":
        bundle["total"] = len(entries)
    bundle["entry"] = entries

    logger.debug("Assembled %s bundle with %d entries", bundle_type, len(entries))
    return bundle
