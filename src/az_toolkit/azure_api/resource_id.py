"""Parsing of ARM resource identifiers."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ResourceId:
    """A parsed ARM resource id.

    ``/subscriptions/s/resourceGroups/rg/providers/Microsoft.Web/sites/app/slots/dev``
    parses into ``provider="Microsoft.Web"`` and
    ``segments=[("sites", "app"), ("slots", "dev")]``.
    """

    id: str
    subscription_id: str
    resource_group_name: str | None = None
    provider: str | None = None
    segments: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def from_string(cls, resource_id: str) -> ResourceId:
        parts = [p for p in resource_id.strip().split("/") if p]
        if len(parts) < 2 or parts[0].lower() != "subscriptions":
            raise ValueError(f"Invalid resource id: {resource_id!r}")
        subscription_id = parts[1]
        rest = parts[2:]
        resource_group: str | None = None
        provider: str | None = None
        segments: list[tuple[str, str]] = []

        if len(rest) >= 2 and rest[0].lower() == "resourcegroups":
            resource_group = rest[1]
            rest = rest[2:]
            if not rest:
                segments.append(("resourceGroups", resource_group))
        if len(rest) >= 2 and rest[0].lower() == "providers":
            provider = rest[1]
            rest = rest[2:]
        if len(rest) % 2:
            raise ValueError(f"Invalid resource id: {resource_id!r}")
        segments.extend((rest[i], rest[i + 1]) for i in range(0, len(rest), 2))
        return cls(
            id=resource_id,
            subscription_id=subscription_id,
            resource_group_name=resource_group,
            provider=provider,
            segments=tuple(segments),
        )

    @property
    def name(self) -> str:
        return self.segments[-1][1] if self.segments else self.subscription_id

    @property
    def resource_type(self) -> str:
        """The last type segment, e.g. ``slots`` (``subscriptions`` for a bare id)."""
        return self.segments[-1][0] if self.segments else "subscriptions"

    @property
    def full_resource_type(self) -> str:
        """``Microsoft.Web/sites/slots`` style type."""
        types = "/".join(t for t, _ in self.segments)
        return f"{self.provider}/{types}" if self.provider else types

    @property
    def parent(self) -> ResourceId | None:
        if len(self.segments) <= 1:
            return None
        trimmed = "/".join(f"{t}/{n}" for t, n in self.segments[:-1])
        head = f"/subscriptions/{self.subscription_id}"
        if self.resource_group_name:
            head += f"/resourceGroups/{self.resource_group_name}"
        if self.provider:
            head += f"/providers/{self.provider}"
        return ResourceId.from_string(f"{head}/{trimmed}")


def build_resource_id(
    subscription_id: str,
    resource_group: str,
    provider: str,
    *segments: str,
) -> str:
    """Join ``type/name`` *segments* into a full resource id."""
    tail = "/".join(segments)
    return (
        f"/subscriptions/{subscription_id}/resourceGroups/{resource_group}"
        f"/providers/{provider}/{tail}"
    )
