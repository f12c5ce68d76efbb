"""Permission models: grantees, capabilities and permission sets."""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class GranteeType(str, Enum):
    """Kind of identity a capability is granted to."""

    USER = 'User'
    GROUP = 'Group'

    @property
    def url_segment(self) -> str:
        return 'users' if self is GranteeType.USER else 'groups'


class CapabilityMode(str, Enum):
    """Capability mode."""

    ALLOW = 'Allow'
    DENY = 'Deny'


class CapabilityNames:
    """Capability names with special handling during migration."""

    PROJECT_LEADER = 'ProjectLeader'
    INHERITED_PROJECT_LEADER = 'InheritedProjectLeader'
    READ = 'Read'
    WRITE = 'Write'
    VIEW_COMMENTS = 'ViewComments'
    ADD_COMMENT = 'AddComment'
    EXPORT_DATA = 'ExportData'
    EXPORT_IMAGE = 'ExportImage'
    FILTER = 'Filter'
    CONNECT = 'Connect'
    CHANGE_PERMISSIONS = 'ChangePermissions'
    DELETE = 'Delete'


class Capability(BaseModel):
    """A named permission with a mode."""

    name: str = Field(..., description='Capability name')
    mode: CapabilityMode = Field(..., description='Allow or Deny')

    class Config:
        """Pydantic configuration."""

        frozen = True


class GranteeCapability(BaseModel):
    """Capabilities granted to one user or group."""

    grantee_type: GranteeType = Field(..., description='User or Group')
    grantee_id: UUID = Field(..., description='Grantee ID')
    capabilities: FrozenSet[Capability] = Field(
        default_factory=frozenset, description='Granted capabilities'
    )

    class Config:
        """Pydantic configuration."""

        frozen = True

    @property
    def grantee_key(self):
        return self.grantee_type, self.grantee_id

    @classmethod
    def from_rest(cls, item: Dict[str, Any]) -> 'GranteeCapability':
        if 'user' in item:
            grantee_type, grantee_id = GranteeType.USER, item['user']['id']
        else:
            grantee_type, grantee_id = GranteeType.GROUP, item['group']['id']

        capabilities = (item.get('capabilities') or {}).get('capability', [])
        return cls(
            grantee_type=grantee_type,
            grantee_id=grantee_id,
            capabilities=frozenset(
                Capability(name=c['name'], mode=c['mode']) for c in capabilities
            ),
        )

    def to_rest(self) -> Dict[str, Any]:
        grantee = 'user' if self.grantee_type is GranteeType.USER else 'group'
        return {
            grantee: {'id': str(self.grantee_id)},
            'capabilities': {
                'capability': [
                    {'name': c.name, 'mode': c.mode.value}
                    for c in sorted(self.capabilities, key=lambda c: (c.name, c.mode.value))
                ]
            },
        }


class Permissions(BaseModel):
    """Permission set of one content item."""

    parent_id: Optional[UUID] = Field(default=None, description='Content item ID')
    grantee_capabilities: List[GranteeCapability] = Field(
        default_factory=list, description='Grantee capabilities'
    )

    @classmethod
    def from_rest(cls, data: Dict[str, Any]) -> 'Permissions':
        permissions = data.get('permissions') or {}
        parent = next(
            (
                permissions[key]
                for key in ('project', 'datasource', 'workbook', 'view', 'flow')
                if key in permissions
            ),
            None,
        )
        return cls(
            parent_id=parent['id'] if parent else None,
            grantee_capabilities=[
                GranteeCapability.from_rest(g)
                for g in permissions.get('granteeCapabilities', [])
            ],
        )
