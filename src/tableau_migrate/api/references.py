"""Site-wide lookups of users, groups and projects by ID or location."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from loguru import logger

from ..models.content import (
    LOCAL_DOMAIN,
    ContentLocation,
    ContentReference,
    ContentType,
)
from .client import TableauClient
from .exceptions import TableauAPIError
from .paging import ApiListPager, ApiPageAccessor, pagination_params, total_available
from .results import PagedResult

# REST path and list keys of the types the finder can resolve
REFERENCE_ENDPOINTS: Dict[ContentType, Tuple[str, str, str]] = {
    ContentType.USER: ('users', 'users', 'user'),
    ContentType.GROUP: ('groups', 'groups', 'group'),
    ContentType.PROJECT: ('projects', 'projects', 'project'),
}


def list_items(data: Any, plural: str, singular: str) -> List[Dict[str, Any]]:
    """Extract the item list from a REST list response.

    Args:
        data: Parsed response body, e.g. ``{"projects": {"project": [...]}}``
        plural: Wrapper key
        singular: Item key

    Returns:
        List of raw item dictionaries
    """
    if not isinstance(data, dict):
        return []
    wrapper = data.get(plural) or {}
    items = wrapper.get(singular) or []
    if isinstance(items, dict):
        return [items]
    return list(items)


class RawListAccessor(ApiPageAccessor[Dict[str, Any]]):
    """Page accessor returning the raw item dictionaries of a list endpoint."""

    def __init__(
        self,
        client: TableauClient,
        path: str,
        plural: str,
        singular: str,
        params: Optional[Dict[str, Any]] = None,
    ):
        self.client = client
        self.path = path
        self.plural = plural
        self.singular = singular
        self.params = dict(params or {})

    async def get_page(self, page_number: int, page_size: int) -> PagedResult[Dict[str, Any]]:
        try:
            response = await self.client.get(
                self.path, params={**self.params, **pagination_params(page_number, page_size)}
            )
        except TableauAPIError as e:
            return PagedResult.failed(e)

        items = list_items(response.data, self.plural, self.singular)
        return PagedResult.page(
            items, page_number, page_size, total_available(response.data)
        )


class ContentReferenceFinder:
    """Resolves users, groups and projects of one site.

    Each type is loaded in full on first use and then served from memory.
    Project locations are built from the parent project chain, user and
    group locations are ``domain/name``.
    """

    def __init__(self, client: TableauClient, page_size: int = 100):
        self.client = client
        self.page_size = page_size
        self._by_id: Dict[ContentType, Dict[UUID, ContentReference]] = {}
        self._by_location: Dict[ContentType, Dict[str, ContentReference]] = {}
        self._locks = {content_type: asyncio.Lock() for content_type in REFERENCE_ENDPOINTS}
        self.logger = logger.bind(component='ContentReferenceFinder')

    async def find_by_id(
        self, content_type: ContentType, content_id: Optional[UUID]
    ) -> Optional[ContentReference]:
        if content_id is None:
            return None
        by_id = await self._load(content_type)
        return by_id.get(UUID(str(content_id)))

    async def find_by_location(
        self, content_type: ContentType, location: ContentLocation
    ) -> Optional[ContentReference]:
        await self._load(content_type)
        return self._by_location[content_type].get(_location_key(location))

    async def find_project(self, project_id: Optional[UUID]) -> Optional[ContentReference]:
        return await self.find_by_id(ContentType.PROJECT, project_id)

    async def find_user(self, user_id: Optional[UUID]) -> Optional[ContentReference]:
        return await self.find_by_id(ContentType.USER, user_id)

    async def find_group(self, group_id: Optional[UUID]) -> Optional[ContentReference]:
        return await self.find_by_id(ContentType.GROUP, group_id)

    def add(self, content_type: ContentType, reference: ContentReference) -> None:
        """Record content created after the cache was loaded."""
        if content_type not in self._by_id:
            return
        self._by_id[content_type][reference.id] = reference
        self._by_location[content_type][_location_key(reference.location)] = reference

    async def _load(self, content_type: ContentType) -> Dict[UUID, ContentReference]:
        if content_type not in REFERENCE_ENDPOINTS:
            raise ValueError(f'Cannot look up references of type {content_type.value}')

        if content_type in self._by_id:
            return self._by_id[content_type]

        async with self._locks[content_type]:
            if content_type in self._by_id:
                return self._by_id[content_type]

            path, plural, singular = REFERENCE_ENDPOINTS[content_type]
            pager = ApiListPager(
                RawListAccessor(self.client, path, plural, singular), self.page_size
            )
            items = await pager.to_list()

            if content_type is ContentType.PROJECT:
                references = _project_references(items)
            else:
                references = [principal_reference(item) for item in items]

            self._by_id[content_type] = {r.id: r for r in references}
            self._by_location[content_type] = {
                _location_key(r.location): r for r in references
            }
            self.logger.debug(f'Loaded {len(references)} {content_type.value} references')

        return self._by_id[content_type]


def _location_key(location: ContentLocation) -> str:
    # Tableau treats user, group and project names case-insensitively.
    return location.path.lower()


def principal_reference(item: Dict[str, Any]) -> ContentReference:
    domain = (item.get('domain') or {}).get('name') or LOCAL_DOMAIN
    return ContentReference(
        id=item['id'],
        name=item['name'],
        location=ContentLocation.for_username(domain, item['name']),
    )


def _project_references(items: List[Dict[str, Any]]) -> List[ContentReference]:
    by_id = {str(item['id']): item for item in items}
    paths: Dict[str, Tuple[str, ...]] = {}

    def path_of(project_id: str, seen=()) -> Tuple[str, ...]:
        if project_id in paths:
            return paths[project_id]
        item = by_id[project_id]
        parent_id = item.get('parentProjectId')
        if parent_id and parent_id in by_id and parent_id not in seen:
            path = path_of(parent_id, seen + (project_id,)) + (item['name'],)
        else:
            path = (item['name'],)
        paths[project_id] = path
        return path

    return [
        ContentReference(
            id=item['id'],
            name=item['name'],
            location=ContentLocation(path_segments=path_of(str(item['id']))),
        )
        for item in items
    ]
