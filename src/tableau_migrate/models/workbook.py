"""Workbook and view entity models."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from .content import Connection, ContentItem, ContentReference, Tag, _as_bool, _as_int
from .data_source import _file_type

WORKBOOK_FILE_TYPES = ['twb', 'twbx']


class View(ContentItem):
    """Tableau view (sheet) model."""

    workbook_name: Optional[str] = Field(default=None, description='Workbook name')
    project: Optional[ContentReference] = Field(default=None, description='Project')
    tags: List[Tag] = Field(default_factory=list, description='Tags')

    @classmethod
    def from_rest(cls, item: Dict[str, Any], **kwargs) -> 'View':
        return cls(
            id=item['id'],
            name=item['name'],
            content_url=item.get('contentUrl'),
            tags=Tag.list_from_rest(item.get('tags')),
            **kwargs,
        )


class Workbook(ContentItem):
    """Tableau workbook model."""

    description: Optional[str] = Field(default=None, description='Description')
    show_tabs: bool = Field(default=False, description='Show sheets as tabs')
    size: int = Field(default=0, description='Size in MB')
    encrypt_extracts: bool = Field(default=False, description='Extracts encrypted')
    webpage_url: Optional[str] = Field(default=None, description='Web page URL')
    project: ContentReference = Field(..., description='Containing project')
    owner: Optional[ContentReference] = Field(default=None, description='Owner')
    tags: List[Tag] = Field(default_factory=list, description='Tags')

    @classmethod
    def from_rest(cls, item: Dict[str, Any], **kwargs) -> 'Workbook':
        return cls(
            id=item['id'],
            name=item['name'],
            content_url=item.get('contentUrl'),
            description=item.get('description') or None,
            show_tabs=bool(_as_bool(item.get('showTabs'))),
            size=_as_int(item.get('size')),
            encrypt_extracts=bool(_as_bool(item.get('encryptExtracts'))),
            webpage_url=item.get('webpageUrl'),
            tags=Tag.list_from_rest(item.get('tags')),
            **kwargs,
        )


class PublishableWorkbook(Workbook):
    """Workbook pulled from the source site, ready to publish.

    Holds the downloaded file; the holder must release it when done.
    """

    connections: List[Connection] = Field(default_factory=list, description='Connections')
    views: List[View] = Field(default_factory=list, description='Views')
    file: Any = Field(default=None, description='Content file handle')
    file_name: str = Field(default='workbook.twbx', description='Original file name')

    class Config:
        """Pydantic configuration."""

        arbitrary_types_allowed = True


class PublishWorkbookOptions(BaseModel):
    """Options for publishing a workbook file."""

    name: str = Field(..., description='Workbook name')
    project_id: UUID = Field(..., description='Destination project ID')
    file_name: str = Field(..., description='File name including extension')
    file_type: str = Field(..., description='File type (twb, twbx)')
    description: Optional[str] = Field(default=None, description='Description')
    show_tabs: bool = Field(default=False, description='Show sheets as tabs')
    encrypt_extracts: bool = Field(default=False, description='Encrypt extracts')
    skip_connection_check: bool = Field(
        default=True, description='Publish without validating embedded connections'
    )
    overwrite: bool = Field(default=True, description='Overwrite existing content')
    hidden_view_names: List[str] = Field(default_factory=list, description='Hidden views')

    @validator('name', 'file_name')
    def validate_not_blank(cls, v):
        """Validate required strings are not blank."""
        if not v or not v.strip():
            raise ValueError('Name and file name are required')
        return v

    @validator('file_type')
    def validate_file_type(cls, v):
        """Validate workbook file type."""
        if v not in WORKBOOK_FILE_TYPES:
            raise ValueError(f'File type must be one of: {WORKBOOK_FILE_TYPES}')
        return v

    @classmethod
    def from_publishable(cls, item: PublishableWorkbook) -> 'PublishWorkbookOptions':
        return cls(
            name=item.name,
            project_id=item.project.id,
            file_name=item.file_name,
            file_type=_file_type(item.file_name, 'twbx'),
            description=item.description,
            show_tabs=item.show_tabs,
            encrypt_extracts=item.encrypt_extracts,
        )
