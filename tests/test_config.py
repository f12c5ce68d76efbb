"""Tests for configuration management."""

import os
import tempfile
from unittest.mock import patch

import pytest

from tableau_migrate.config.config import (
    Config,
    ConfigReader,
    MigrationConfig,
    ResilienceConfig,
    SiteConnectionConfig,
)


class TestSiteConnectionConfig:
    """Test site connection configuration."""

    def test_valid_config(self):
        """Test valid configuration creation."""
        config = SiteConnectionConfig(
            server_url='https://tableau.example.com/',
            site_content_url='marketing',
            access_token_name='migration',
            access_token='secret',
        )

        assert config.server_url == 'https://tableau.example.com'
        assert config.site_content_url == 'marketing'
        assert config.access_token_name == 'migration'

    def test_url_validation(self):
        """Test URL validation."""
        with pytest.raises(ValueError):
            SiteConnectionConfig(
                server_url='tableau.example.com',
                access_token_name='migration',
                access_token='secret',
            )

    def test_missing_token(self):
        """Test that a blank token raises validation error."""
        with pytest.raises(ValueError):
            SiteConnectionConfig(
                server_url='https://tableau.example.com',
                access_token_name='migration',
                access_token='  ',
            )


class TestResilienceConfig:
    """Test resilience configuration."""

    def test_defaults(self):
        config = ResilienceConfig()

        assert config.retry_enabled is True
        assert config.retry_intervals == [1.0, 3.0, 10.0]
        assert config.retry_override_status_codes == []

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            ResilienceConfig(retry_intervals=[1, -2])

    def test_policy_key_changes_with_settings(self):
        base = ResilienceConfig(retry_intervals=[1, 2])

        assert base.policy_key() == ResilienceConfig(retry_intervals=[1, 2]).policy_key()
        assert base.policy_key() != ResilienceConfig(retry_intervals=[1, 2, 4]).policy_key()
        assert (
            base.policy_key()
            != ResilienceConfig(retry_intervals=[1, 2], retry_override_status_codes=[503]).policy_key()
        )
        assert (
            base.policy_key()
            != ResilienceConfig(retry_intervals=[1, 2], retry_enabled=False).policy_key()
        )


class TestMigrationConfig:
    """Test migration settings."""

    def test_page_size_bounds(self):
        with pytest.raises(ValueError):
            MigrationConfig(page_size=0)
        with pytest.raises(ValueError):
            MigrationConfig(page_size=1001)

    def test_max_concurrency_positive(self):
        with pytest.raises(ValueError):
            MigrationConfig(max_concurrency=0)


class TestConfig:
    """Test main configuration class."""

    def setup_method(self):
        self.config_dict = {
            'source': {
                'server_url': 'https://source.example.com',
                'access_token_name': 'source-name',
                'access_token': 'source-secret',
            },
            'destination': {
                'server_url': 'https://prod-useast-a.online.tableau.com',
                'site_content_url': 'dest',
                'access_token_name': 'dest-name',
                'access_token': 'dest-secret',
            },
            'migration': {'users': False, 'page_size': 25},
        }

    def test_config_from_dict(self):
        """Test configuration creation from dictionary."""
        config = Config(**self.config_dict)

        assert config.source.site_content_url == ''
        assert config.destination.site_content_url == 'dest'
        assert config.migration.users is False
        assert config.migration.groups is True
        assert config.migration.page_size == 25
        assert config.logging.level == 'INFO'

    def test_extra_fields_rejected(self):
        with pytest.raises(ValueError):
            Config(**self.config_dict, unexpected={'a': 1})

    def test_config_file_round_trip(self):
        """Test saving and loading configuration from file."""
        config = Config(**self.config_dict)

        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, 'config.yaml')
            config.to_file(path)
            loaded = Config.from_file(path)

        assert loaded == config

    def test_from_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            Config.from_file('/nonexistent/config.yaml')

    def test_create_template_is_loadable(self):
        """Test that the generated template is a valid configuration."""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, 'nested', 'config.yaml')
            Config.create_template(path)
            config = Config.from_file(path)

        assert config.source.server_url == 'https://tableau-source.example.com'
        assert config.migration.manifest_path == 'migration-manifest.json'

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env = {
            'SOURCE_TABLEAU_URL': 'https://source.example.com',
            'SOURCE_TABLEAU_SITE': 'src',
            'SOURCE_TABLEAU_TOKEN_NAME': 'source-name',
            'SOURCE_TABLEAU_TOKEN': 'source-secret',
            'DEST_TABLEAU_URL': 'https://dest.example.com',
            'DEST_TABLEAU_TOKEN_NAME': 'dest-name',
            'DEST_TABLEAU_TOKEN': 'dest-secret',
            'TABLEAU_RETRY_INTERVALS': '1,2,4',
            'MIGRATION_PAGE_SIZE': '50',
        }

        with patch.dict(os.environ, env, clear=True), patch(
            'tableau_migrate.config.config.load_dotenv'
        ):
            config = Config.from_env()

        assert config.source.site_content_url == 'src'
        assert config.destination.site_content_url == ''
        assert config.resilience.retry_intervals == [1.0, 2.0, 4.0]
        assert config.migration.page_size == 50

    def test_from_env_missing_values(self):
        with patch.dict(os.environ, {}, clear=True), patch(
            'tableau_migrate.config.config.load_dotenv'
        ):
            with pytest.raises(ValueError):
                Config.from_env()


class TestConfigReader:
    """Test the live configuration holder."""

    def test_update_replaces_snapshot(self):
        config = Config(
            source={
                'server_url': 'https://a.example.com',
                'access_token_name': 'n',
                'access_token': 's',
            },
            destination={
                'server_url': 'https://b.example.com',
                'access_token_name': 'n',
                'access_token': 's',
            },
        )
        reader = ConfigReader(config)
        updated = config.copy(update={'resilience': ResilienceConfig(retry_enabled=False)})

        reader.update(updated)

        assert reader.get() is updated
        assert reader.get().resilience.retry_enabled is False
