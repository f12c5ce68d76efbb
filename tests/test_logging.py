"""Tests for logging setup."""

from loguru import logger

from tableau_migrate.utils.logging import redact_secrets, setup_logging


class TestLogging:
    """Test loguru configuration."""

    def teardown_method(self):
        logger.remove()

    def test_redact_header_and_payload_tokens(self):
        assert redact_secrets('X-Tableau-Auth: abc123') == 'X-Tableau-Auth: ***'
        assert (
            redact_secrets('{"personalAccessTokenSecret": "s3cret"}')
            == '{"personalAccessTokenSecret": "***"}'
        )
        assert redact_secrets('Signed in to site dest') == 'Signed in to site dest'

    def test_file_sink_receives_redacted_component_records(self, tmp_path):
        log_file = tmp_path / 'logs' / 'migration.log'

        setup_logging('DEBUG', log_file=str(log_file))
        logger.bind(component='AuthenticationHandler').info('Refreshed token=abc123')

        content = log_file.read_text()
        assert 'AuthenticationHandler' in content
        assert 'token=***' in content
        assert 'abc123' not in content
