"""Migration engine - main entry point for migration operations."""

from typing import Dict, List, Optional

from loguru import logger

from ..api.api_client import ApiClient
from ..api.exceptions import TableauAuthenticationError
from ..config.config import Config, ConfigReader
from ..files.store import ContentFileStore, TemporaryContentFileStore
from .hooks import ContentMapping
from .manifest import JsonManifestStore, Manifest
from .orchestrator import MigrationOrchestrator, MigrationPlan, MigrationSummary
from .strategy import MigrationContext


class MigrationEngine:
    """Signs in to both sites and runs a migration plan between them."""

    def __init__(
        self,
        config: Config,
        file_store: Optional[ContentFileStore] = None,
        source_api: Optional[ApiClient] = None,
        destination_api: Optional[ApiClient] = None,
        mappings: Optional[List[ContentMapping]] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Migration configuration
            file_store: Store for downloaded content files
            source_api: Source site API client (built from config if not given)
            destination_api: Destination site API client (built from config if not given)
            mappings: Extra location mappings applied to migrated content
        """
        self.config = config
        self.config_reader = ConfigReader(config)
        self.logger = logger.bind(component='MigrationEngine')

        self.file_store = file_store or TemporaryContentFileStore(
            config.files.temp_dir, cleanup=config.files.cleanup_temp
        )
        self.source_api = source_api or ApiClient(
            config.source, self.config_reader, self.file_store
        )
        self.destination_api = destination_api or ApiClient(
            config.destination, self.config_reader, self.file_store
        )
        self.mappings = list(mappings or [])
        self.manifest_store = JsonManifestStore(config.migration.manifest_path)

    async def migrate(self, plan: Optional[MigrationPlan] = None) -> MigrationSummary:
        """Execute migration with the given plan.

        Args:
            plan: Migration plan (uses default if not provided)

        Returns:
            Migration summary
        """
        return await self._run(plan or self._create_default_plan(), dry_run=False)

    async def dry_run(self, plan: Optional[MigrationPlan] = None) -> MigrationSummary:
        """Perform a dry run of the migration.

        Args:
            plan: Migration plan (uses default if not provided)

        Returns:
            Migration summary (dry run results)
        """
        return await self._run(plan or self._create_default_plan(), dry_run=True)

    async def _run(self, plan: MigrationPlan, dry_run: bool) -> MigrationSummary:
        self.logger.info(f'Starting Tableau {"migration dry run" if dry_run else "migration"}')
        manifest = self.manifest_store.load(self.config.migration.plan_id)

        try:
            source, destination = await self._sign_in()
            async with source, destination:
                context = MigrationContext.create(
                    source,
                    destination,
                    manifest,
                    self.config.migration,
                    mappings=self.mappings,
                )
                orchestrator = MigrationOrchestrator(context, self.manifest_store)

                if dry_run:
                    summary = await orchestrator.dry_run_migration(plan)
                else:
                    summary = await orchestrator.execute_migration(plan)

            self.logger.info('Migration run finished')
            return summary

        except Exception as e:
            self.logger.error(f'Migration failed: {e}')
            raise
        finally:
            if not (dry_run or self.config.migration.dry_run):
                self.manifest_store.save(manifest)
            await self.close()

    async def _sign_in(self):
        """Sign in to both sites.

        Raises:
            TableauAuthenticationError: If either sign-in fails
        """
        self.logger.info('Signing in to source and destination sites')

        source = await self.source_api.sign_in()
        if not source:
            raise TableauAuthenticationError(f'Cannot sign in to source site: {source.error}')

        destination = await self.destination_api.sign_in()
        if not destination:
            await source.value.sign_out()
            raise TableauAuthenticationError(
                f'Cannot sign in to destination site: {destination.error}'
            )

        return source.value, destination.value

    async def validate(self) -> Dict[str, bool]:
        """Check that both sites accept the configured credentials.

        Returns:
            Sign-in outcome per site
        """
        results = {}
        try:
            for name, api in (('source', self.source_api), ('destination', self.destination_api)):
                signed_in = await api.sign_in()
                results[name] = signed_in.success
                if signed_in:
                    await signed_in.value.sign_out()
                else:
                    self.logger.error(f'{name.title()} sign-in failed: {signed_in.error}')
        finally:
            await self.close()
        return results

    def load_manifest(self) -> Manifest:
        return self.manifest_store.load(self.config.migration.plan_id)

    async def close(self) -> None:
        await self.source_api.client.close()
        await self.destination_api.client.close()
        close_store = getattr(self.file_store, 'close', None)
        if close_store is not None:
            close_store()

    def _create_default_plan(self) -> MigrationPlan:
        """Create default migration plan from configuration.

        Returns:
            Default migration plan
        """
        settings = self.config.migration
        return MigrationPlan(
            migrate_users=settings.users,
            migrate_groups=settings.groups,
            migrate_projects=settings.projects,
            migrate_data_sources=settings.data_sources,
            migrate_workbooks=settings.workbooks,
            max_concurrency=settings.max_concurrency,
            continue_on_error=settings.continue_on_error,
        )
