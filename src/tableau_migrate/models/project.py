"""Project entity models."""

from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from .content import ContentItem, ContentReference

CONTENT_PERMISSIONS_MODES = ['LockedToProject', 'ManagedByOwner', 'LockedToProjectWithoutNested']


class Project(ContentItem):
    """Tableau project model.

    ``location`` is the path of project names from the top-level project down
    to this one.
    """

    description: Optional[str] = Field(default=None, description='Description')
    parent_project_id: Optional[UUID] = Field(
        default=None, description='Parent project ID, None for top-level projects'
    )
    content_permissions: Optional[str] = Field(
        default=None, description='Content permissions mode'
    )
    owner: Optional[ContentReference] = Field(default=None, description='Owner')

    @classmethod
    def from_rest(cls, item: Dict[str, Any], **kwargs) -> 'Project':
        return cls(
            id=item['id'],
            name=item['name'],
            description=item.get('description') or None,
            parent_project_id=item.get('parentProjectId') or None,
            content_permissions=item.get('contentPermissions'),
            **kwargs,
        )


class PublishableProject(Project):
    """Project prepared for creation on the destination.

    ``parent`` is rewritten by transformers to the destination parent project.
    """

    parent: Optional[ContentReference] = Field(default=None, description='Parent')


class CreateProjectOptions(BaseModel):
    """Options for creating a project."""

    name: str = Field(..., description='Project name')
    description: Optional[str] = Field(default=None, description='Description')
    parent_project_id: Optional[UUID] = Field(default=None, description='Parent ID')
    content_permissions: Optional[str] = Field(default=None, description='Permissions mode')

    @validator('name')
    def validate_name(cls, v):
        """Validate project name is not blank."""
        if not v or not v.strip():
            raise ValueError('Project name is required')
        return v

    @validator('content_permissions')
    def validate_content_permissions(cls, v):
        """Validate content permissions mode."""
        if v is not None and v not in CONTENT_PERMISSIONS_MODES:
            raise ValueError(f'Content permissions must be one of: {CONTENT_PERMISSIONS_MODES}')
        return v
