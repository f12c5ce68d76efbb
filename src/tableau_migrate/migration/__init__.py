"""Migration engine, orchestrator, strategies and manifest."""

from .engine import MigrationEngine
from .hooks import (
    AdminInsightsProjectFilter,
    ContentLocationMapping,
    DomainMapping,
    GroupUsersTransformer,
    MigrationHooks,
    OwnershipTransformer,
    ProjectReferenceTransformer,
    SystemUserFilter,
)
from .manifest import JsonManifestStore, Manifest, ManifestEntry, ManifestStatus
from .orchestrator import (
    MigrationAbortedError,
    MigrationOrchestrator,
    MigrationPlan,
    MigrationSummary,
)
from .permissions import PermissionsTransformer, merge_grantee_capabilities
from .strategy import MigrationContext, MigrationStrategy

__all__ = [
    'AdminInsightsProjectFilter',
    'ContentLocationMapping',
    'DomainMapping',
    'GroupUsersTransformer',
    'JsonManifestStore',
    'Manifest',
    'ManifestEntry',
    'ManifestStatus',
    'MigrationAbortedError',
    'MigrationContext',
    'MigrationEngine',
    'MigrationHooks',
    'MigrationOrchestrator',
    'MigrationPlan',
    'MigrationStrategy',
    'MigrationSummary',
    'OwnershipTransformer',
    'PermissionsTransformer',
    'ProjectReferenceTransformer',
    'SystemUserFilter',
    'merge_grantee_capabilities',
]
