"""Content references, locations and shared content entity models."""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, Field

PATH_SEPARATOR = '/'
DOMAIN_SEPARATOR = '\\'
LOCAL_DOMAIN = 'local'
SYSTEM_USERNAME = '_system'
ADMIN_INSIGHTS_PROJECT_NAMES = (
    'Admin Insights',
    'Admin Insights (Tableau)',
    'Admin Insights (Tableau Online)',
)


class ContentType(str, Enum):
    """Closed set of content types the migration knows how to move."""

    USER = 'users'
    GROUP = 'groups'
    PROJECT = 'projects'
    DATA_SOURCE = 'data_sources'
    WORKBOOK = 'workbooks'
    VIEW = 'views'


class ContentLocation(BaseModel):
    """Hierarchical path identifying content independent of its ID."""

    path_segments: Tuple[str, ...] = Field(default=(), description='Path segments')

    class Config:
        """Pydantic configuration."""

        frozen = True

    @classmethod
    def from_path(cls, *segments: str) -> 'ContentLocation':
        return cls(path_segments=tuple(s for s in segments if s is not None))

    @classmethod
    def for_username(cls, domain: str, username: str) -> 'ContentLocation':
        return cls(path_segments=(domain, username))

    @property
    def path(self) -> str:
        return PATH_SEPARATOR.join(self.path_segments)

    @property
    def name(self) -> str:
        return self.path_segments[-1] if self.path_segments else ''

    def append(self, name: str) -> 'ContentLocation':
        return ContentLocation(path_segments=self.path_segments + (name,))

    def parent(self) -> 'ContentLocation':
        return ContentLocation(path_segments=self.path_segments[:-1])

    def __str__(self) -> str:
        return self.path


class ContentReference(BaseModel):
    """Immutable pointer to a content item on one site."""

    id: UUID = Field(..., description='Content ID')
    name: str = Field(..., description='Content name')
    location: ContentLocation = Field(
        default_factory=ContentLocation, description='Content location'
    )
    content_url: Optional[str] = Field(default=None, description='Content URL')

    class Config:
        """Pydantic configuration."""

        frozen = True

    def __str__(self) -> str:
        return f'{self.location.path or self.name} ({self.id})'


class ContentItem(BaseModel):
    """Base model for content entities read from a site."""

    id: UUID = Field(..., description='Content ID')
    name: str = Field(..., description='Content name')
    location: ContentLocation = Field(
        default_factory=ContentLocation, description='Content location'
    )
    content_url: Optional[str] = Field(default=None, description='Content URL')

    @property
    def reference(self) -> ContentReference:
        return ContentReference(
            id=self.id,
            name=self.name,
            location=self.location,
            content_url=self.content_url,
        )


class Tag(BaseModel):
    """Content tag."""

    label: str = Field(..., description='Tag label')

    @classmethod
    def list_from_rest(cls, data: Optional[Dict[str, Any]]) -> List['Tag']:
        if not data:
            return []
        return [cls(label=t['label']) for t in data.get('tag', []) if t.get('label')]


class Connection(BaseModel):
    """Data connection embedded in a data source or workbook."""

    id: UUID = Field(..., description='Connection ID')
    type: Optional[str] = Field(default=None, description='Connection type')
    server_address: Optional[str] = Field(default=None, description='Server address')
    server_port: Optional[str] = Field(default=None, description='Server port')
    username: Optional[str] = Field(default=None, description='Connection username')
    embed_password: Optional[bool] = Field(
        default=None, description='Password embedded in the connection'
    )
    query_tagging_enabled: Optional[bool] = Field(
        default=None, description='Query tagging enabled'
    )

    @classmethod
    def from_rest(cls, item: Dict[str, Any]) -> 'Connection':
        return cls(
            id=item['id'],
            type=item.get('type'),
            server_address=item.get('serverAddress'),
            server_port=item.get('serverPort'),
            username=item.get('userName'),
            embed_password=_as_bool(item.get('embedPassword')),
            query_tagging_enabled=_as_bool(item.get('queryTaggingEnabled')),
        )


def _as_bool(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    return str(value).lower() == 'true'


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
