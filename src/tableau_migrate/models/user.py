"""User entity models."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, validator

from .content import LOCAL_DOMAIN, ContentItem, ContentLocation

SITE_ROLES = [
    'Creator',
    'Explorer',
    'ExplorerCanPublish',
    'SiteAdministratorCreator',
    'SiteAdministratorExplorer',
    'ServerAdministrator',
    'Unlicensed',
    'Viewer',
]


class User(ContentItem):
    """Tableau site user model."""

    domain: str = Field(default=LOCAL_DOMAIN, description='User domain')
    full_name: Optional[str] = Field(default=None, description='Full name')
    email: Optional[str] = Field(default=None, description='Email address')
    site_role: str = Field(default='Unlicensed', description='Site role')
    auth_setting: Optional[str] = Field(
        default=None, description='Authentication setting (SAML, OpenID, ...)'
    )

    @validator('email')
    def validate_email(cls, v):
        """Basic email validation."""
        if v is not None and '@' not in v:
            raise ValueError('Invalid email format')
        return v.lower() if v else v

    @classmethod
    def from_rest(cls, item: Dict[str, Any]) -> 'User':
        domain = (item.get('domain') or {}).get('name') or LOCAL_DOMAIN
        name = item['name']
        return cls(
            id=item['id'],
            name=name,
            domain=domain,
            full_name=item.get('fullName'),
            email=item.get('email') or None,
            site_role=item.get('siteRole', 'Unlicensed'),
            auth_setting=item.get('authSetting'),
            location=ContentLocation.for_username(domain, name),
        )

    @property
    def qualified_name(self) -> str:
        """Username prefixed with its domain, as the sign-in name for non-local users."""
        if self.domain == LOCAL_DOMAIN:
            return self.name
        return f'{self.domain}\\{self.name}'


class AddUserOptions(BaseModel):
    """Options for adding a user to a site."""

    name: str = Field(..., description='Username, qualified with domain if not local')
    site_role: str = Field(..., description='Site role')
    auth_setting: Optional[str] = Field(default=None, description='Auth setting')
    full_name: Optional[str] = Field(default=None, description='Full name')
    email: Optional[str] = Field(default=None, description='Email address')

    @validator('name')
    def validate_name(cls, v):
        """Validate username is not blank."""
        if not v or not v.strip():
            raise ValueError('Username is required')
        return v

    @validator('site_role')
    def validate_site_role(cls, v):
        """Validate site role."""
        if v not in SITE_ROLES:
            raise ValueError(f'Site role must be one of: {SITE_ROLES}')
        return v

    @classmethod
    def from_user(cls, user: User) -> 'AddUserOptions':
        return cls(
            name=user.qualified_name,
            site_role=user.site_role,
            auth_setting=user.auth_setting,
            full_name=user.full_name,
            email=user.email,
        )
