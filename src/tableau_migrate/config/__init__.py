"""Configuration for Tableau Migration Tool."""

from .config import (
    Config,
    ConfigReader,
    FilesConfig,
    LoggingConfig,
    MigrationConfig,
    ResilienceConfig,
    SiteConnectionConfig,
)

__all__ = [
    'Config',
    'ConfigReader',
    'FilesConfig',
    'LoggingConfig',
    'MigrationConfig',
    'ResilienceConfig',
    'SiteConnectionConfig',
]
