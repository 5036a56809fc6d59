"""Read-only view of client records as the engine needs them."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ClientProfile:
    """Normalized client fields used by matching, previews and cleanup."""

    id: str
    name: str
    status: str
    service_types: tuple[str, ...]
    business_type: str
    reporting_info: dict[str, Any] = field(default_factory=dict)
    payment_method: str = "digital"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def cycles(self, cycles_key: str) -> int:
        """Number of batches per month for a cycle-based category (at least 1)."""
        raw = self.reporting_info.get(cycles_key)
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return 1
        return max(value, 1)

    def owns(self, record: dict[str, Any]) -> bool:
        """Whether a record belongs to this client.

        Records carrying a ``client_id`` match by id only; legacy rows without
        one fall back to the client name.
        """
        record_client_id = record.get("client_id")
        if record_client_id:
            return record_client_id == self.id
        return bool(self.name) and record.get("client_name") == self.name

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ClientProfile":
        """Build a profile from a raw client record.

        Raises:
            ValueError: If the record lacks an id/name or has malformed fields.
        """
        client_id = record.get("id")
        name = record.get("name")
        if not client_id or not name:
            raise ValueError("client record missing id or name")

        services = record.get("service_types") or []
        if not isinstance(services, (list, tuple, set)):
            raise ValueError(f"client {client_id}: service_types must be a list")

        reporting_info = record.get("reporting_info") or {}
        if not isinstance(reporting_info, dict):
            raise ValueError(f"client {client_id}: reporting_info must be a mapping")

        business_info = record.get("business_info") or {}
        business_type = ""
        if isinstance(business_info, dict):
            business_type = business_info.get("business_type") or ""
        business_type = business_type or record.get("business_type") or ""

        billing_info = record.get("billing_info") or {}
        payment_method = ""
        if isinstance(billing_info, dict):
            payment_method = billing_info.get("payment_method") or ""

        return cls(
            id=str(client_id),
            name=str(name),
            status=str(record.get("status") or ""),
            service_types=tuple(str(s) for s in services),
            business_type=str(business_type),
            reporting_info=dict(reporting_info),
            payment_method=payment_method or "digital",
        )
