"""
HardbanRecords Publishing API - Settings Tests
===============================================
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from hardban_publishing.config import Settings
from hardban_publishing.exceptions import ConfigValidationError


class TestSettings:

    def test_defaults(self):
        app_settings = Settings(_env_file=None, NODE_ENV="development")
        assert app_settings.redis_db == 2
        assert app_settings.rate_limit_window_ms == 900_000
        assert app_settings.rate_limit_max == 100
        assert app_settings.jwt_algorithm == "HS256"
        assert app_settings.is_development is True

    def test_environment_normalized(self):
        app_settings = Settings(_env_file=None, NODE_ENV=" Production ")
        assert app_settings.environment == "production"
        assert app_settings.is_production is True

    def test_cors_origins_list(self):
        app_settings = Settings(_env_file=None, cors_origins="https://a.test, ,https://b.test")
        assert app_settings.cors_origins_list == ["https://a.test", "https://b.test"]

    def test_invalid_log_level(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, log_level="LOUD")

    def test_log_level_uppercased(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_validate_required_lists_every_missing_secret(self):
        app_settings = Settings(_env_file=None, supabase_url="", supabase_anon_key="", jwt_secret="")

        with pytest.raises(ConfigValidationError) as exc_info:
            app_settings.validate_required()

        assert exc_info.value.missing == ["SUPABASE_URL", "SUPABASE_ANON_KEY", "JWT_SECRET"]

    def test_validate_required_passes(self, test_settings):
        test_settings.validate_required()
