"""Configuration management for Tableau Migration Tool."""

import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator

DEFAULT_RETRY_INTERVALS = [1.0, 3.0, 10.0]


class SiteConnectionConfig(BaseModel):
    """Connection settings for a Tableau Server or Tableau Cloud site."""

    server_url: str = Field(..., description='Tableau server URL')
    site_content_url: str = Field(
        default='', description='Site content URL (empty for the default site)'
    )
    access_token_name: str = Field(..., description='Personal access token name')
    access_token: str = Field(..., description='Personal access token secret')

    @validator('server_url')
    def validate_server_url(cls, v):
        """Validate server URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('access_token_name', 'access_token')
    def validate_token(cls, v):
        """Validate that token fields are not blank."""
        if not v or not v.strip():
            raise ValueError('Personal access token name and secret are required')
        return v


class ResilienceConfig(BaseModel):
    """Retry, timeout and rate limit settings applied to every REST call."""

    retry_enabled: bool = Field(default=True, description='Retry transient failures')
    retry_intervals: List[float] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_INTERVALS),
        description='Seconds to wait before each retry attempt',
    )
    retry_override_status_codes: List[int] = Field(
        default_factory=list,
        description='Status codes to retry instead of the transient defaults',
    )
    timeout: float = Field(default=100.0, description='Request timeout in seconds')
    rate_limit_per_second: float = Field(
        default=10.0, description='API requests per second limit'
    )

    @validator('retry_intervals', each_item=True)
    def validate_retry_intervals(cls, v):
        """Validate retry intervals are not negative."""
        if v < 0:
            raise ValueError('Retry intervals cannot be negative')
        return v

    @validator('timeout', 'rate_limit_per_second')
    def validate_positive(cls, v):
        """Validate timeout and rate limit are positive."""
        if v <= 0:
            raise ValueError('Timeout and rate limit must be positive')
        return v

    def policy_key(self) -> str:
        """Signature identifying the retry policy derived from these settings."""
        intervals = ';'.join(str(i) for i in self.retry_intervals)
        codes = ';'.join(str(c) for c in self.retry_override_status_codes)
        return f'{self.retry_enabled}_{intervals}_{codes}'


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    users: bool = Field(default=True, description='Migrate users')
    groups: bool = Field(default=True, description='Migrate groups')
    projects: bool = Field(default=True, description='Migrate projects')
    data_sources: bool = Field(default=True, description='Migrate data sources')
    workbooks: bool = Field(default=True, description='Migrate workbooks')
    permissions: bool = Field(
        default=True, description='Migrate permissions of migrated content'
    )

    page_size: int = Field(default=100, description='Items per REST list page')
    max_concurrency: int = Field(
        default=5, description='Concurrent items processed per content type'
    )
    continue_on_error: bool = Field(
        default=True, description='Keep migrating after an item fails'
    )
    include_extracts: bool = Field(
        default=True, description='Download extracts with workbooks and data sources'
    )
    dry_run: bool = Field(default=False, description='Perform dry run without changes')

    plan_id: Optional[str] = Field(
        default=None, description='Identity of the migration plan for resumed runs'
    )
    manifest_path: str = Field(
        default='migration-manifest.json', description='Manifest file path'
    )

    @validator('page_size')
    def validate_page_size(cls, v):
        """Validate page size is within the REST API bounds."""
        if v <= 0 or v > 1000:
            raise ValueError('Page size must be between 1 and 1000')
        return v

    @validator('max_concurrency')
    def validate_max_concurrency(cls, v):
        """Validate max concurrency is positive."""
        if v <= 0:
            raise ValueError('Max concurrency must be positive')
        return v


class FilesConfig(BaseModel):
    """Content file store configuration."""

    temp_dir: Optional[str] = Field(
        default=None,
        description='Directory for downloaded content files. If not specified, uses system temp directory.',
    )
    chunk_size: int = Field(
        default=64 * 1024 * 1024, description='Upload chunk size in bytes'
    )
    cleanup_temp: bool = Field(
        default=True, description='Remove downloaded files when the run finishes'
    )

    @validator('temp_dir')
    def validate_temp_dir(cls, v):
        """Validate temp directory path."""
        if v is not None:
            temp_path = Path(v)
            if not temp_path.is_absolute():
                raise ValueError('temp_dir must be an absolute path')
        return v

    @validator('chunk_size')
    def validate_chunk_size(cls, v):
        """Validate chunk size is positive."""
        if v <= 0:
            raise ValueError('Chunk size must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: str = Field(
        default='{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}',
        description='Log format',
    )

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for Tableau Migration Tool."""

    source: SiteConnectionConfig = Field(..., description='Source site')
    destination: SiteConnectionConfig = Field(..., description='Destination site')
    resilience: ResilienceConfig = Field(
        default_factory=ResilienceConfig, description='Network resilience settings'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    files: FilesConfig = Field(
        default_factory=FilesConfig, description='Content file settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'  # Don't allow extra fields

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        retry_intervals = os.getenv('TABLEAU_RETRY_INTERVALS')

        config_data = {
            'source': {
                'server_url': os.getenv('SOURCE_TABLEAU_URL'),
                'site_content_url': os.getenv('SOURCE_TABLEAU_SITE'),
                'access_token_name': os.getenv('SOURCE_TABLEAU_TOKEN_NAME'),
                'access_token': os.getenv('SOURCE_TABLEAU_TOKEN'),
            },
            'destination': {
                'server_url': os.getenv('DEST_TABLEAU_URL'),
                'site_content_url': os.getenv('DEST_TABLEAU_SITE'),
                'access_token_name': os.getenv('DEST_TABLEAU_TOKEN_NAME'),
                'access_token': os.getenv('DEST_TABLEAU_TOKEN'),
            },
            'resilience': {
                'retry_enabled': os.getenv('TABLEAU_RETRY_ENABLED', 'true').lower()
                == 'true',
                'retry_intervals': [float(i) for i in retry_intervals.split(',') if i]
                if retry_intervals is not None
                else None,
                'timeout': float(os.getenv('TABLEAU_TIMEOUT', 100)),
            },
            'migration': {
                'page_size': int(os.getenv('MIGRATION_PAGE_SIZE', 100)),
                'max_concurrency': int(os.getenv('MIGRATION_MAX_CONCURRENCY', 5)),
                'manifest_path': os.getenv(
                    'MIGRATION_MANIFEST_PATH', 'migration-manifest.json'
                ),
                'plan_id': os.getenv('MIGRATION_PLAN_ID'),
            },
            'files': {
                'temp_dir': os.getenv('MIGRATION_TEMP_DIR'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        # Remove None values
        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.dict(), f, default_flow_style=False, indent=2, sort_keys=False
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'source': {
                'server_url': 'https://tableau-source.example.com',
                'site_content_url': 'source-site',
                'access_token_name': 'your-source-token-name',
                'access_token': 'your-source-token-secret',
            },
            'destination': {
                'server_url': 'https://prod-useast-a.online.tableau.com',
                'site_content_url': 'destination-site',
                'access_token_name': 'your-destination-token-name',
                'access_token': 'your-destination-token-secret',
            },
            'resilience': {
                'retry_enabled': True,
                'retry_intervals': list(DEFAULT_RETRY_INTERVALS),
                'retry_override_status_codes': [],
                'timeout': 100,
                'rate_limit_per_second': 10,
            },
            'migration': {
                'users': True,
                'groups': True,
                'projects': True,
                'data_sources': True,
                'workbooks': True,
                'permissions': True,
                'page_size': 100,
                'max_concurrency': 5,
                'continue_on_error': True,
                'dry_run': False,
                'manifest_path': 'migration-manifest.json',
            },
            'files': {
                'temp_dir': '/tmp/tableau-migration',
                'cleanup_temp': True,
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
                'format': '{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )


class ConfigReader:
    """Thread-safe holder of the live configuration snapshot.

    Components that cache values derived from configuration (the retry
    policy cache) call :meth:`get` on every use so that a replaced snapshot
    is picked up on the next call.
    """

    def __init__(self, config: Config):
        self._config = config
        self._lock = threading.Lock()

    def get(self) -> Config:
        return self._config

    def update(self, config: Config) -> None:
        with self._lock:
            self._config = config
