"""Permission merge rules and the transformer that maps grantees to the destination."""

from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from loguru import logger

from ..models.content import ContentType
from ..models.permissions import (
    Capability,
    CapabilityMode,
    CapabilityNames,
    GranteeCapability,
    GranteeType,
    Permissions,
)

GRANTEE_CONTENT_TYPES = {
    GranteeType.USER: ContentType.USER,
    GranteeType.GROUP: ContentType.GROUP,
}


def is_migratable(capability: Capability) -> bool:
    """Project leader capabilities that cannot be set explicitly are dropped."""
    if capability.name == CapabilityNames.INHERITED_PROJECT_LEADER:
        return False
    if capability.name == CapabilityNames.PROJECT_LEADER:
        return capability.mode is not CapabilityMode.DENY
    return True


def merge_grantee_capabilities(
    records: Iterable[GranteeCapability],
) -> List[GranteeCapability]:
    """Merge capability records into one record per grantee.

    Capabilities of records with the same grantee are unioned. When the same
    capability is both allowed and denied, deny wins. The result does not
    depend on the order of ``records``; grantees left with no capabilities
    are dropped.

    Args:
        records: Grantee capability records, possibly with repeated grantees

    Returns:
        Merged records sorted by grantee
    """
    merged: Dict[Tuple[GranteeType, UUID], Dict[str, CapabilityMode]] = {}

    for record in records:
        capabilities = merged.setdefault(record.grantee_key, {})
        for capability in record.capabilities:
            if not is_migratable(capability):
                continue
            if capabilities.get(capability.name) is CapabilityMode.DENY:
                continue
            capabilities[capability.name] = capability.mode

    return [
        GranteeCapability(
            grantee_type=grantee_type,
            grantee_id=grantee_id,
            capabilities=frozenset(
                Capability(name=name, mode=mode) for name, mode in capabilities.items()
            ),
        )
        for (grantee_type, grantee_id), capabilities in sorted(
            merged.items(), key=lambda kv: (kv[0][0].value, str(kv[0][1]))
        )
        if capabilities
    ]


class PermissionsTransformer:
    """Rewrites source permissions for the destination site.

    Each distinct source grantee is resolved once. Grantees without a
    destination counterpart are dropped, then the records are merged since
    several source grantees can map to the same destination grantee.
    """

    def __init__(self, finder):
        self.finder = finder
        self.logger = logger.bind(component='PermissionsTransformer')

    async def transform(
        self, permissions: Permissions, parent_id: Optional[UUID] = None
    ) -> Permissions:
        resolved: Dict[Tuple[GranteeType, UUID], Optional[UUID]] = {}

        for record in permissions.grantee_capabilities:
            key = record.grantee_key
            if key in resolved:
                continue
            destination = await self.finder.find_by_source_id(
                GRANTEE_CONTENT_TYPES[record.grantee_type], record.grantee_id
            )
            resolved[key] = destination.id if destination else None
            if destination is None:
                self.logger.warning(
                    f'{record.grantee_type.value} {record.grantee_id} has no '
                    'destination counterpart; dropping its permissions'
                )

        mapped = [
            GranteeCapability(
                grantee_type=record.grantee_type,
                grantee_id=resolved[record.grantee_key],
                capabilities=record.capabilities,
            )
            for record in permissions.grantee_capabilities
            if resolved[record.grantee_key] is not None
        ]

        return Permissions(
            parent_id=parent_id or permissions.parent_id,
            grantee_capabilities=merge_grantee_capabilities(mapped),
        )
