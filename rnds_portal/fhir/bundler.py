"""
FHIR Bundle Assembler

Creates a FHIR Bundle (collection or searchset) and appends mapped resources
in the order the caller adds them. ``finalize`` sets the total and refreshes
the timestamp once every entry has been appended.
"""
from typing import Any, Dict, List
from datetime import datetime, timezone
import uuid

BUNDLE_TYPES = ("collection", "searchset")


def generate_bundle_id() -> str:
    """Generate a unique bundle ID."""
    return str(uuid.uuid4())


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC instant with milliseconds."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S") + f".{now.microsecond // 1000:03d}Z"


class FHIRBundler:
    """
    Assembles FHIR resources into a Bundle.

    Usage:
        bundler = FHIRBundler("collection")
        bundler.add_entry("Patient", "patient-123", patient_resource)
        bundle = bundler.finalize()

    Entries are never reordered or deduplicated; ordering and uniqueness
    are the caller's responsibility.
    """

    def __init__(self, bundle_type: str = "collection"):
        """
        Create an empty bundle envelope.

        Args:
            bundle_type: "collection" or "searchset"
        """
        if bundle_type not in BUNDLE_TYPES:
            raise ValueError(f"Unsupported bundle type: {bundle_type}")

        self.bundle: Dict[str, Any] = {
            "resourceType": "Bundle",
            "id": generate_bundle_id(),
            "type": bundle_type,
            "timestamp": utc_timestamp(),
            "total": 0,
            "entry": [],
        }

    @property
    def entries(self) -> List[Dict[str, Any]]:
        return self.bundle["entry"]

    def add_entry(self, resource_type: str, resource_id: str, resource: Dict[str, Any]) -> None:
        """
        Append one entry; the total is left for ``finalize``.

        Args:
            resource_type: FHIR resource type of the entry
            resource_id: External id used in the entry fullUrl
            resource: Mapped resource
        """
        self.entries.append({
            "fullUrl": f"{resource_type}/{resource_id}",
            "resource": resource,
        })

    def finalize(self) -> Dict[str, Any]:
        """
        Set the total to the entry count and refresh the timestamp.

        Returns:
            The bundle dictionary (JSON-serializable)
        """
        self.bundle["total"] = len(self.entries)
        self.bundle["timestamp"] = utc_timestamp()
        return self.bundle

    @property
    def resource_count(self) -> int:
        """Number of resources in the bundle."""
        return len(self.entries)

    def get_resource_types(self) -> List[str]:
        """Get list of resource types in the bundle, in entry order."""
        return [entry["resource"]["resourceType"] for entry in self.entries]
