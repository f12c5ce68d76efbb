"""Filters, mappings and transformers applied to items during migration."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from ..models.content import (
    ADMIN_INSIGHTS_PROJECT_NAMES,
    LOCAL_DOMAIN,
    SYSTEM_USERNAME,
    ContentLocation,
    ContentReference,
    ContentType,
)


class MissingReferenceError(LookupError):
    """A source reference has no counterpart on the destination."""

    def __init__(self, content_type: ContentType, reference: Any):
        super().__init__(f'No destination {content_type.value} found for {reference}')
        self.content_type = content_type
        self.reference = reference


class ContentFilter(ABC):
    """Decides whether a source item is migrated at all."""

    content_types: Sequence[ContentType] = ()

    def applies_to(self, content_type: ContentType) -> bool:
        return content_type in self.content_types

    @abstractmethod
    def should_migrate(self, content_type: ContentType, item: Any) -> bool:
        """Return False to leave the item on the source."""


class SystemUserFilter(ContentFilter):
    """Skips the built-in system user that exists on every site."""

    content_types = (ContentType.USER,)

    def should_migrate(self, content_type: ContentType, item: Any) -> bool:
        return item.name.lower() != SYSTEM_USERNAME


class AdminInsightsProjectFilter(ContentFilter):
    """Skips the built-in Admin Insights projects and the content inside them."""

    content_types = (ContentType.PROJECT, ContentType.DATA_SOURCE, ContentType.WORKBOOK)

    def should_migrate(self, content_type: ContentType, item: Any) -> bool:
        segments = item.location.path_segments
        if not segments:
            return True
        return segments[0] not in ADMIN_INSIGHTS_PROJECT_NAMES


class ContentMapping(ABC):
    """Changes where a source item lands on the destination."""

    content_types: Sequence[ContentType] = ()

    def applies_to(self, content_type: ContentType) -> bool:
        return content_type in self.content_types

    @abstractmethod
    def map_location(
        self, content_type: ContentType, location: ContentLocation
    ) -> ContentLocation:
        """Return the destination location for a source location."""

    def map(self, content_type: ContentType, item: Any) -> Any:
        location = self.map_location(content_type, item.location)
        if location == item.location:
            return item
        return item.copy(update={'location': location, 'name': location.name})


class ContentLocationMapping(ContentMapping):
    """Mapping backed by a callable; returning None keeps the location."""

    def __init__(
        self,
        mapper: Callable[[ContentType, ContentLocation], Optional[ContentLocation]],
        content_types: Iterable[ContentType] = tuple(ContentType),
    ):
        self.mapper = mapper
        self.content_types = tuple(content_types)

    def map_location(self, content_type, location):
        return self.mapper(content_type, location) or location


class DomainMapping(ContentMapping):
    """Moves users and groups from source domains to destination domains.

    Args:
        domains: Source domain to destination domain, compared case-insensitively
        default_domain: Destination domain for unlisted domains, None to keep them
    """

    content_types = (ContentType.USER, ContentType.GROUP)

    def __init__(self, domains: Dict[str, str], default_domain: Optional[str] = None):
        self.domains = {k.lower(): v for k, v in domains.items()}
        self.default_domain = default_domain

    def map_location(self, content_type, location):
        if len(location.path_segments) != 2:
            return location
        domain, name = location.path_segments
        mapped = self.domains.get(domain.lower(), self.default_domain or domain)
        return ContentLocation.for_username(mapped, name)

    def map(self, content_type, item):
        mapped = super().map(content_type, item)
        if mapped is item:
            return item
        return mapped.copy(update={'domain': mapped.location.parent().path or LOCAL_DOMAIN})


class ContentTransformer(ABC):
    """Rewrites a pulled item before it is published."""

    content_types: Sequence[ContentType] = ()

    def applies_to(self, content_type: ContentType) -> bool:
        return content_type in self.content_types

    @abstractmethod
    async def transform(self, content_type: ContentType, item: Any) -> Any:
        """Return the item to publish."""


class ProjectReferenceTransformer(ContentTransformer):
    """Points projects, data sources and workbooks at their destination project."""

    content_types = (ContentType.PROJECT, ContentType.DATA_SOURCE, ContentType.WORKBOOK)

    def __init__(self, finder):
        self.finder = finder

    async def transform(self, content_type, item):
        if content_type is ContentType.PROJECT:
            if item.parent is None:
                return item
            parent = await self._find(item.parent)
            return item.copy(
                update={'parent': parent, 'location': parent.location.append(item.name)}
            )

        project = await self._find(item.project)
        return item.copy(
            update={'project': project, 'location': project.location.append(item.name)}
        )

    async def _find(self, source: ContentReference) -> ContentReference:
        destination = await self.finder.find_by_source(ContentType.PROJECT, source)
        if destination is None:
            raise MissingReferenceError(ContentType.PROJECT, source)
        return destination


class OwnershipTransformer(ContentTransformer):
    """Maps the owner to the destination user.

    Items whose owner has no destination counterpart keep no owner and end up
    owned by the signed-in user.
    """

    content_types = (ContentType.PROJECT, ContentType.DATA_SOURCE, ContentType.WORKBOOK)

    def __init__(self, finder):
        self.finder = finder
        self.logger = logger.bind(component='OwnershipTransformer')

    async def transform(self, content_type, item):
        if item.owner is None:
            return item
        owner = await self.finder.find_by_source(ContentType.USER, item.owner)
        if owner is None:
            self.logger.warning(f'Owner {item.owner} of {item.name} was not migrated')
        return item.copy(update={'owner': owner})


class GroupUsersTransformer(ContentTransformer):
    """Maps group members to destination users, dropping those not migrated."""

    content_types = (ContentType.GROUP,)

    def __init__(self, finder):
        self.finder = finder
        self.logger = logger.bind(component='GroupUsersTransformer')

    async def transform(self, content_type, item):
        users: List[ContentReference] = []
        for user in item.users:
            destination = await self.finder.find_by_source(ContentType.USER, user)
            if destination is None:
                self.logger.warning(f'Member {user} of group {item.name} was not migrated')
                continue
            users.append(destination)
        return item.copy(update={'users': users})


class MigrationHooks:
    """Ordered filters, mappings and transformers of a migration."""

    def __init__(
        self,
        filters: Optional[List[ContentFilter]] = None,
        mappings: Optional[List[ContentMapping]] = None,
        transformers: Optional[List[ContentTransformer]] = None,
    ):
        self.filters = list(filters or [])
        self.mappings = list(mappings or [])
        self.transformers = list(transformers or [])

    @classmethod
    def default(cls, finder, mappings: Optional[List[ContentMapping]] = None) -> 'MigrationHooks':
        return cls(
            filters=[SystemUserFilter(), AdminInsightsProjectFilter()],
            mappings=mappings,
            transformers=[
                ProjectReferenceTransformer(finder),
                OwnershipTransformer(finder),
                GroupUsersTransformer(finder),
            ],
        )

    def should_migrate(self, content_type: ContentType, item: Any) -> bool:
        return all(
            f.should_migrate(content_type, item)
            for f in self.filters
            if f.applies_to(content_type)
        )

    def map_location(
        self, content_type: ContentType, location: ContentLocation
    ) -> ContentLocation:
        for mapping in self.mappings:
            if mapping.applies_to(content_type):
                location = mapping.map_location(content_type, location)
        return location

    def apply_mappings(self, content_type: ContentType, item: Any) -> Any:
        for mapping in self.mappings:
            if mapping.applies_to(content_type):
                item = mapping.map(content_type, item)
        return item

    async def apply_transformers(self, content_type: ContentType, item: Any) -> Any:
        for transformer in self.transformers:
            if transformer.applies_to(content_type):
                item = await transformer.transform(content_type, item)
        return item
