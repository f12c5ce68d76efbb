"""Resolution of source references to their destination counterparts."""

from typing import Callable, Optional
from uuid import UUID

from ..api.references import ContentReferenceFinder
from ..models.content import ContentLocation, ContentReference, ContentType
from .manifest import Manifest

LocationMapper = Callable[[ContentType, ContentLocation], ContentLocation]


class DestinationFinder:
    """Finds the destination item that corresponds to a source item.

    The manifest is consulted first. Users, groups and projects that were
    not migrated in this plan are then looked up by their mapped location on
    the destination, which lets existing destination content (such as the
    default project) be adopted instead of duplicated.
    """

    def __init__(
        self,
        manifest: Manifest,
        source: ContentReferenceFinder,
        destination: ContentReferenceFinder,
        map_location: Optional[LocationMapper] = None,
    ):
        self.manifest = manifest
        self.source = source
        self.destination = destination
        self.map_location = map_location or (lambda content_type, location: location)

    async def find_by_source(
        self, content_type: ContentType, source: ContentReference
    ) -> Optional[ContentReference]:
        destination = self.manifest.find_destination(content_type, source.id)
        if destination is not None:
            return destination
        return await self.find_existing(content_type, source.location)

    async def find_by_source_id(
        self, content_type: ContentType, source_id: UUID
    ) -> Optional[ContentReference]:
        destination = self.manifest.find_destination(content_type, source_id)
        if destination is not None:
            return destination

        source = await self.source.find_by_id(content_type, source_id)
        if source is None:
            return None
        return await self.find_existing(content_type, source.location)

    async def find_existing(
        self, content_type: ContentType, source_location: ContentLocation
    ) -> Optional[ContentReference]:
        """Look up destination content at the mapped location of a source item."""
        if content_type not in (ContentType.USER, ContentType.GROUP, ContentType.PROJECT):
            return None
        location = self.map_location(content_type, source_location)
        return await self.destination.find_by_location(content_type, location)
