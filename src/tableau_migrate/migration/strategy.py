"""Per content type migration strategies."""

from abc import ABC
from typing import Any, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..api.api_client import SitesApiClient
from ..api.content import ContentApiClient
from ..api.results import Result
from ..config.config import MigrationConfig
from ..models.content import ContentReference, ContentType
from .finders import DestinationFinder
from .hooks import ContentMapping, MigrationHooks
from .manifest import Manifest, ManifestEntry, ManifestStatus
from .permissions import PermissionsTransformer


class MigrationContext(BaseModel):
    """Context shared by the strategies of one migration run."""

    source: SitesApiClient = Field(..., description='Signed-in source site')
    destination: SitesApiClient = Field(..., description='Signed-in destination site')
    manifest: Manifest = Field(..., description='Migration manifest')
    finder: DestinationFinder = Field(..., description='Destination reference finder')
    hooks: MigrationHooks = Field(..., description='Filters, mappings and transformers')
    settings: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )

    class Config:
        """Pydantic configuration."""

        arbitrary_types_allowed = True

    @classmethod
    def create(
        cls,
        source: SitesApiClient,
        destination: SitesApiClient,
        manifest: Manifest,
        settings: MigrationConfig,
        mappings: Optional[List[ContentMapping]] = None,
    ) -> 'MigrationContext':
        """Build a context with the default hooks wired to a destination finder."""
        finder = DestinationFinder(manifest, source.finder, destination.finder)
        hooks = MigrationHooks.default(finder, mappings)
        finder.map_location = hooks.map_location
        return cls(
            source=source,
            destination=destination,
            manifest=manifest,
            finder=finder,
            hooks=hooks,
            settings=settings,
        )


class MigrationStrategy(ABC):
    """Moves all items of one content type.

    Every item goes through pull, mappings, transformers and publish, and
    its manifest entry records each step. A failure is recorded on the entry
    and never stops the other items.
    """

    content_type: ContentType

    def __init__(self, context: MigrationContext):
        """Initialize migration strategy.

        Args:
            context: Migration context with clients, manifest and hooks
        """
        self.context = context
        self.logger = logger.bind(component=self.__class__.__name__)
        self.permissions_transformer = PermissionsTransformer(context.finder)

    @property
    def source_client(self) -> ContentApiClient:
        return self.context.source.get_client(self.content_type)

    @property
    def destination_client(self) -> ContentApiClient:
        return self.context.destination.get_client(self.content_type)

    async def list_source_items(self) -> List[Any]:
        pager = self.source_client.get_pager(self.context.settings.page_size)
        return await pager.to_list()

    def batches(self, items: List[Any]) -> List[List[Any]]:
        """Split items into groups that must run one after another."""
        return [items]

    async def migrate_entity(self, item: Any) -> ManifestEntry:
        """Migrate a single item, recording the outcome in the manifest.

        Args:
            item: Source item

        Returns:
            The item's manifest entry
        """
        entry = self.context.manifest.get_or_create(self.content_type, item.reference)
        if entry.status is ManifestStatus.COMPLETED:
            self.logger.debug(f'{item.reference} already migrated, skipping')
            return entry

        entry.reset()

        if not self.context.hooks.should_migrate(self.content_type, item):
            self.logger.info(f'Skipping {item.reference} (filtered)')
            entry.skip()
            return entry

        if self.context.settings.dry_run:
            self.logger.info(f'Dry run: would migrate {item.reference}')
            return entry

        step = 'pull'
        publishable = None
        try:
            entry.transition(ManifestStatus.PULLING)
            pulled = await self.source_client.pull(item)
            if not pulled:
                entry.fail(step, pulled.error)
                return entry
            publishable = pulled.value

            step = 'transform'
            entry.transition(ManifestStatus.TRANSFORMING)
            mapped = self.context.hooks.apply_mappings(self.content_type, publishable)
            transformed = await self.context.hooks.apply_transformers(
                self.content_type, mapped
            )

            step = 'publish'
            entry.transition(ManifestStatus.PUBLISHING)
            published = await self.publish(transformed)
            if not published:
                entry.fail(step, published.error)
                return entry

            step = 'post_publish'
            finished = await self.after_publish(item, transformed, published.value)
            if not finished:
                entry.fail(step, finished.error)
                return entry

            entry.complete(published.value)
            self.logger.info(f'Migrated {item.reference} -> {published.value.id}')
        except Exception as e:
            self.logger.error(f'Error migrating {item.reference} during {step}: {e}')
            entry.fail(step, e)
        finally:
            handle = getattr(publishable, 'file', None)
            if handle is not None:
                handle.release()

        return entry

    async def publish(self, item: Any) -> Result[ContentReference]:
        return await self.destination_client.publish(item)

    async def after_publish(
        self, source: Any, item: Any, destination: ContentReference
    ) -> Result:
        """Apply what can only be set once the destination item exists."""
        return Result.succeeded()

    async def find_existing(self, item: Any) -> Optional[ContentReference]:
        return await self.context.destination.finder.find_by_location(
            self.content_type, item.location
        )

    async def migrate_permissions(self, source_id, destination_id) -> Result:
        """Copy explicit permissions of an item to its destination counterpart."""
        if not self.context.settings.permissions:
            return Result.succeeded()

        source_permissions = await self.source_client.permissions.get_permissions(source_id)
        if not source_permissions:
            return source_permissions.cast_failure()

        permissions = await self.permissions_transformer.transform(
            source_permissions.value, parent_id=destination_id
        )
        return await self.destination_client.permissions.update_permissions(
            destination_id, permissions
        )


class UserMigrationStrategy(MigrationStrategy):
    """Adds source users to the destination site, adopting existing ones."""

    content_type = ContentType.USER

    async def publish(self, item):
        existing = await self.find_existing(item)
        if existing is not None:
            self.logger.info(f'User {item.location} already exists in destination')
            return Result.succeeded(existing)
        return await super().publish(item)


class GroupMigrationStrategy(MigrationStrategy):
    """Creates groups and their memberships, adopting existing groups."""

    content_type = ContentType.GROUP

    async def publish(self, item):
        existing = await self.find_existing(item)
        if existing is None:
            return await super().publish(item)

        self.logger.info(f'Group {item.location} already exists in destination')
        errors = []
        for user in item.users:
            added = await self.destination_client.add_user(existing.id, user.id)
            if not added:
                errors.extend(added.errors)
        if errors:
            return Result.failed(*errors)
        return Result.succeeded(existing)


class ProjectMigrationStrategy(MigrationStrategy):
    """Creates the project hierarchy, parents before children."""

    content_type = ContentType.PROJECT

    def batches(self, items):
        by_depth = {}
        for item in items:
            by_depth.setdefault(len(item.location.path_segments), []).append(item)
        return [by_depth[depth] for depth in sorted(by_depth)]

    async def publish(self, item):
        existing = await self.find_existing(item)
        if existing is not None:
            self.logger.info(f'Project {item.location} already exists in destination')
            return Result.succeeded(existing)
        return await super().publish(item)

    async def after_publish(self, source, item, destination):
        if item.owner is not None:
            changed = await self.destination_client.change_owner(destination.id, item.owner.id)
            if not changed:
                return changed
        return await self.migrate_permissions(source.id, destination.id)


class FileContentMigrationStrategy(MigrationStrategy):
    """Data sources and workbooks: publish the file, then tags, owner and permissions."""

    async def after_publish(self, source, item, destination):
        if item.tags:
            tagged = await self.destination_client.tags.add_tags(destination.id, item.tags)
            if not tagged:
                return tagged

        if item.owner is not None:
            changed = await self.destination_client.change_owner(destination.id, item.owner.id)
            if not changed:
                return changed

        return await self.migrate_permissions(source.id, destination.id)


class DataSourceMigrationStrategy(FileContentMigrationStrategy):
    """Published data sources."""

    content_type = ContentType.DATA_SOURCE


class WorkbookMigrationStrategy(FileContentMigrationStrategy):
    """Workbooks with their views."""

    content_type = ContentType.WORKBOOK


STRATEGIES = {
    ContentType.USER: UserMigrationStrategy,
    ContentType.GROUP: GroupMigrationStrategy,
    ContentType.PROJECT: ProjectMigrationStrategy,
    ContentType.DATA_SOURCE: DataSourceMigrationStrategy,
    ContentType.WORKBOOK: WorkbookMigrationStrategy,
}
