"""Group entity models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from .content import LOCAL_DOMAIN, ContentItem, ContentLocation, ContentReference

GRANT_LICENSE_MODES = ['onLogin', 'onSync']


class Group(ContentItem):
    """Tableau group model."""

    domain: str = Field(default=LOCAL_DOMAIN, description='Group domain')
    grant_license_mode: Optional[str] = Field(
        default=None, description='When to grant licenses to members'
    )
    minimum_site_role: Optional[str] = Field(
        default=None, description='Site role granted on sign-in'
    )

    @classmethod
    def from_rest(cls, item: Dict[str, Any]) -> 'Group':
        domain = (item.get('domain') or {}).get('name') or LOCAL_DOMAIN
        import_info = item.get('import') or {}
        return cls(
            id=item['id'],
            name=item['name'],
            domain=domain,
            grant_license_mode=import_info.get('grantLicenseMode'),
            minimum_site_role=import_info.get('siteRole') or item.get('minimumSiteRole'),
            location=ContentLocation.for_username(domain, item['name']),
        )


class PublishableGroup(Group):
    """Group plus the users that belong to it."""

    users: List[ContentReference] = Field(
        default_factory=list, description='Group members'
    )


class CreateGroupOptions(BaseModel):
    """Options for creating a local group."""

    name: str = Field(..., description='Group name')
    minimum_site_role: Optional[str] = Field(default=None, description='Site role')
    grant_license_mode: Optional[str] = Field(default=None, description='License mode')

    @validator('name')
    def validate_name(cls, v):
        """Validate group name is not blank."""
        if not v or not v.strip():
            raise ValueError('Group name is required')
        return v

    @validator('grant_license_mode')
    def validate_grant_license_mode(cls, v, values):
        """License mode requires a minimum site role."""
        if v is not None:
            if v not in GRANT_LICENSE_MODES:
                raise ValueError(f'Grant license mode must be one of: {GRANT_LICENSE_MODES}')
            if not values.get('minimum_site_role'):
                raise ValueError('grant_license_mode requires minimum_site_role')
        return v
