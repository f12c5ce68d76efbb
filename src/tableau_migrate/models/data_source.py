"""Published data source entity models."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from .content import Connection, ContentItem, ContentReference, Tag, _as_bool

DATA_SOURCE_FILE_TYPES = ['hyper', 'tds', 'tdsx', 'tde']


class DataSource(ContentItem):
    """Tableau published data source model."""

    description: Optional[str] = Field(default=None, description='Description')
    type: Optional[str] = Field(default=None, description='Connection type')
    is_certified: bool = Field(default=False, description='Certified')
    certification_note: Optional[str] = Field(default=None, description='Certification note')
    encrypt_extracts: bool = Field(default=False, description='Extracts encrypted')
    has_extracts: bool = Field(default=False, description='Has extracts')
    use_remote_query_agent: bool = Field(default=False, description='Uses Bridge')
    webpage_url: Optional[str] = Field(default=None, description='Web page URL')
    project: ContentReference = Field(..., description='Containing project')
    owner: Optional[ContentReference] = Field(default=None, description='Owner')
    tags: List[Tag] = Field(default_factory=list, description='Tags')

    @classmethod
    def from_rest(cls, item: Dict[str, Any], **kwargs) -> 'DataSource':
        return cls(
            id=item['id'],
            name=item['name'],
            content_url=item.get('contentUrl'),
            description=item.get('description') or None,
            type=item.get('type'),
            is_certified=bool(_as_bool(item.get('isCertified'))),
            certification_note=item.get('certificationNote'),
            encrypt_extracts=bool(_as_bool(item.get('encryptExtracts'))),
            has_extracts=bool(_as_bool(item.get('hasExtracts'))),
            use_remote_query_agent=bool(_as_bool(item.get('useRemoteQueryAgent'))),
            webpage_url=item.get('webpageUrl'),
            tags=Tag.list_from_rest(item.get('tags')),
            **kwargs,
        )


class PublishableDataSource(DataSource):
    """Data source pulled from the source site, ready to publish.

    Holds the downloaded file; the holder must release it when done.
    """

    connections: List[Connection] = Field(default_factory=list, description='Connections')
    file: Any = Field(default=None, description='Content file handle')
    file_name: str = Field(default='datasource.tdsx', description='Original file name')

    class Config:
        """Pydantic configuration."""

        arbitrary_types_allowed = True


class PublishDataSourceOptions(BaseModel):
    """Options for publishing a data source file."""

    name: str = Field(..., description='Data source name')
    project_id: UUID = Field(..., description='Destination project ID')
    file_name: str = Field(..., description='File name including extension')
    file_type: str = Field(..., description='File type (tdsx, hyper, ...)')
    description: Optional[str] = Field(default=None, description='Description')
    use_remote_query_agent: bool = Field(default=False, description='Uses Bridge')
    encrypt_extracts: bool = Field(default=False, description='Encrypt extracts')
    overwrite: bool = Field(default=True, description='Overwrite existing content')

    @validator('name', 'file_name')
    def validate_not_blank(cls, v):
        """Validate required strings are not blank."""
        if not v or not v.strip():
            raise ValueError('Name and file name are required')
        return v

    @validator('file_type')
    def validate_file_type(cls, v):
        """Validate data source file type."""
        if v not in DATA_SOURCE_FILE_TYPES:
            raise ValueError(f'File type must be one of: {DATA_SOURCE_FILE_TYPES}')
        return v

    @classmethod
    def from_publishable(cls, item: PublishableDataSource) -> 'PublishDataSourceOptions':
        return cls(
            name=item.name,
            project_id=item.project.id,
            file_name=item.file_name,
            file_type=_file_type(item.file_name, 'tdsx'),
            description=item.description,
            use_remote_query_agent=item.use_remote_query_agent,
            encrypt_extracts=item.encrypt_extracts,
        )


def _file_type(file_name: str, default: str) -> str:
    if '.' in file_name:
        return file_name.rsplit('.', 1)[1].lower()
    return default
