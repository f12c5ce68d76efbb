"""Data models for Tableau content."""

from .content import (
    Connection,
    ContentItem,
    ContentLocation,
    ContentReference,
    ContentType,
    Tag,
)
from .data_source import DataSource, PublishableDataSource, PublishDataSourceOptions
from .group import CreateGroupOptions, Group, PublishableGroup
from .permissions import (
    Capability,
    CapabilityMode,
    CapabilityNames,
    GranteeCapability,
    GranteeType,
    Permissions,
)
from .project import CreateProjectOptions, Project, PublishableProject
from .user import AddUserOptions, User
from .workbook import PublishableWorkbook, PublishWorkbookOptions, View, Workbook

__all__ = [
    'AddUserOptions',
    'Capability',
    'CapabilityMode',
    'CapabilityNames',
    'Connection',
    'ContentItem',
    'ContentLocation',
    'ContentReference',
    'ContentType',
    'CreateGroupOptions',
    'CreateProjectOptions',
    'DataSource',
    'GranteeCapability',
    'GranteeType',
    'Group',
    'Permissions',
    'Project',
    'PublishableDataSource',
    'PublishableGroup',
    'PublishableProject',
    'PublishableWorkbook',
    'PublishDataSourceOptions',
    'PublishWorkbookOptions',
    'Tag',
    'User',
    'View',
    'Workbook',
]
