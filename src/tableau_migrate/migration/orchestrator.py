"""Migration orchestrator for coordinating content type migrations."""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field, validator

from ..api.paging import PageFetchError
from ..models.content import ContentType
from .manifest import JsonManifestStore, ManifestEntry, ManifestStatus
from .strategy import STRATEGIES, MigrationContext, MigrationStrategy

MIGRATION_ORDER = [
    ContentType.USER,
    ContentType.GROUP,
    ContentType.PROJECT,
    ContentType.DATA_SOURCE,
    ContentType.WORKBOOK,
]


class MigrationAbortedError(Exception):
    """A content type had failures and the plan does not continue on error."""

    def __init__(self, content_type: ContentType, failed: int, summary: 'MigrationSummary'):
        super().__init__(
            f'Migration stopped after {content_type.value}: {failed} item(s) failed'
        )
        self.content_type = content_type
        self.failed = failed
        self.summary = summary


class MigrationPlan(BaseModel):
    """Migration execution plan."""

    migrate_users: bool = Field(default=True, description='Migrate users')
    migrate_groups: bool = Field(default=True, description='Migrate groups')
    migrate_projects: bool = Field(default=True, description='Migrate projects')
    migrate_data_sources: bool = Field(default=True, description='Migrate data sources')
    migrate_workbooks: bool = Field(default=True, description='Migrate workbooks')

    # Each content type completes before the next one starts
    execution_order: List[ContentType] = Field(
        default_factory=lambda: list(MIGRATION_ORDER),
        description='Order of content type migration',
    )

    max_concurrency: int = Field(default=5, description='Concurrent items per type')
    continue_on_error: bool = Field(
        default=True, description='Keep migrating after an item fails'
    )

    @validator('max_concurrency')
    def validate_max_concurrency(cls, v):
        """Validate max concurrency is positive."""
        if v <= 0:
            raise ValueError('Max concurrency must be positive')
        return v

    def should_migrate(self, content_type: ContentType) -> bool:
        flags = {
            ContentType.USER: self.migrate_users,
            ContentType.GROUP: self.migrate_groups,
            ContentType.PROJECT: self.migrate_projects,
            ContentType.DATA_SOURCE: self.migrate_data_sources,
            ContentType.WORKBOOK: self.migrate_workbooks,
        }
        return flags.get(content_type, False)


class MigrationSummary(BaseModel):
    """Summary of migration results."""

    total_entities: int = Field(default=0, description='Total items processed')
    successful_migrations: int = Field(default=0, description='Completed items')
    failed_migrations: int = Field(default=0, description='Failed items')
    skipped_migrations: int = Field(default=0, description='Skipped items')
    pending_migrations: int = Field(
        default=0, description='Items left pending, e.g. by a dry run'
    )

    started_at: datetime = Field(default_factory=datetime.now, description='Start time')
    completed_at: Optional[datetime] = Field(default=None, description='Completion time')

    results_by_type: Dict[str, Dict[str, int]] = Field(
        default_factory=dict, description='Status counts per content type'
    )
    errors: List[str] = Field(default_factory=list, description='Failure messages')

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    def add(self, content_type: ContentType, entries: List[ManifestEntry]) -> Dict[str, int]:
        counts = {'total': len(entries), 'successful': 0, 'failed': 0, 'skipped': 0, 'pending': 0}
        for entry in entries:
            if entry.status is ManifestStatus.COMPLETED:
                counts['successful'] += 1
            elif entry.status is ManifestStatus.FAILED:
                counts['failed'] += 1
                self.errors.append(
                    f'{content_type.value} {entry.source}: '
                    f'{entry.error.step} failed: {entry.error.message}'
                )
            elif entry.status is ManifestStatus.SKIPPED:
                counts['skipped'] += 1
            else:
                counts['pending'] += 1

        self.results_by_type[content_type.value] = counts
        self.total_entities += counts['total']
        self.successful_migrations += counts['successful']
        self.failed_migrations += counts['failed']
        self.skipped_migrations += counts['skipped']
        self.pending_migrations += counts['pending']
        return counts


class MigrationOrchestrator:
    """Runs content types in order, items of a type concurrently."""

    def __init__(
        self,
        context: MigrationContext,
        store: Optional[JsonManifestStore] = None,
    ):
        """Initialize migration orchestrator.

        Args:
            context: Migration context with clients, manifest and hooks
            store: Manifest persistence, None to keep the manifest in memory
        """
        self.context = context
        self.store = store
        self.logger = logger.bind(component='MigrationOrchestrator')
        self.strategies: Dict[ContentType, MigrationStrategy] = {
            content_type: strategy(context) for content_type, strategy in STRATEGIES.items()
        }
        self._save_lock = asyncio.Lock()

    async def execute_migration(self, plan: MigrationPlan) -> MigrationSummary:
        """Execute migration according to the plan.

        Args:
            plan: Migration execution plan

        Returns:
            Migration summary with results

        Raises:
            MigrationAbortedError: If a type had failures and the plan stops on error
        """
        self.logger.info('Starting migration execution')
        summary = MigrationSummary()

        for content_type in plan.execution_order:
            if not plan.should_migrate(content_type):
                self.logger.info(f'Skipping {content_type.value} migration (disabled in plan)')
                continue

            self.logger.info(f'Starting {content_type.value} migration')
            strategy = self.strategies[content_type]

            try:
                items = await strategy.list_source_items()
            except PageFetchError as e:
                self.logger.error(f'Failed to list source {content_type.value}: {e}')
                summary.errors.append(f'{content_type.value}: listing failed: {e}')
                if not plan.continue_on_error:
                    raise MigrationAbortedError(content_type, 0, summary) from e
                continue

            entries = await self._migrate_entities(
                strategy,
                items,
                plan.max_concurrency,
                stop_on_error=not plan.continue_on_error,
            )
            await self._save()

            counts = summary.add(content_type, entries)
            self.logger.info(
                f'Completed {content_type.value} migration: '
                f'{counts["successful"]} successful, '
                f'{counts["failed"]} failed, '
                f'{counts["skipped"]} skipped'
            )

            if counts['failed'] and not plan.continue_on_error:
                summary.completed_at = datetime.now()
                raise MigrationAbortedError(content_type, counts['failed'], summary)

        summary.completed_at = datetime.now()
        self.logger.info(
            f'Migration completed: {summary.successful_migrations} successful, '
            f'{summary.failed_migrations} failed, {summary.skipped_migrations} skipped'
        )
        return summary

    async def _migrate_entities(
        self,
        strategy: MigrationStrategy,
        items: List[Any],
        max_concurrency: int,
        stop_on_error: bool = False,
    ) -> List[ManifestEntry]:
        """Migrate items with bounded concurrency, batch after batch.

        With ``stop_on_error`` the first failure stops the type: items that
        have not started yet are left untouched so a resumed run picks them up.
        """
        semaphore = asyncio.Semaphore(max_concurrency)
        stopped = asyncio.Event()

        async def process(item):
            async with semaphore:
                if stopped.is_set():
                    return self.context.manifest.get_or_create(
                        strategy.content_type, item.reference
                    )
                entry = await strategy.migrate_entity(item)
                if entry.status is ManifestStatus.FAILED and stop_on_error:
                    stopped.set()
            if entry.status in (ManifestStatus.COMPLETED, ManifestStatus.FAILED):
                await self._save()
            return entry

        entries: List[ManifestEntry] = []
        batches = strategy.batches(items)
        for batch in batches:
            entries.extend(await asyncio.gather(*(process(item) for item in batch)))

        if stopped.is_set():
            self.logger.warning(
                f'Stopped {strategy.content_type.value} after the first failure'
            )

        self.logger.info(
            f'Processed {len(items)} {strategy.content_type.value} in {len(batches)} batch(es)'
        )
        return entries

    async def _save(self) -> None:
        if self.store is None or self.context.settings.dry_run:
            return
        async with self._save_lock:
            data = self.context.manifest.to_dict()
            await asyncio.to_thread(self.store.write, data)

    async def dry_run_migration(self, plan: MigrationPlan) -> MigrationSummary:
        """Walk and filter the source without publishing anything."""
        original_dry_run = self.context.settings.dry_run
        self.context.settings.dry_run = True

        try:
            self.logger.info('Starting migration dry run')
            return await self.execute_migration(plan)
        finally:
            self.context.settings.dry_run = original_dry_run
