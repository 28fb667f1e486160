import os
from unittest.mock import patch

import pytest
import yaml

from ebook_ai.config import (
    Config,
    StaticConfigProvider,
    CallableConfigProvider,
    as_config_provider,
    API_KEY_ENV_VAR,
)
from ebook_ai.exceptions import ConfigurationError
from ebook_ai.models import AIConfig, Provider


class TestConfigProviders:
    """Test the config provider helpers."""

    def test_static_value(self):
        """Test a plain config is wrapped in a static provider."""
        # Arrange
        config = AIConfig(provider="gemini", api_key="k")

        # Act
        provider = as_config_provider(config)

        # Assert
        assert isinstance(provider, StaticConfigProvider)
        assert provider.current() is config

    def test_accessor_is_read_every_time(self):
        """Test an accessor is called on each current() call."""
        # Arrange
        configs = iter([AIConfig(provider="gemini"), AIConfig(provider="ollama")])

        # Act
        provider = as_config_provider(lambda: next(configs))

        # Assert
        assert isinstance(provider, CallableConfigProvider)
        assert provider.current().provider is Provider.GEMINI
        assert provider.current().provider is Provider.OLLAMA

    def test_existing_provider_passes_through(self):
        """Test objects already exposing current() are used as-is."""
        # Arrange
        provider = StaticConfigProvider(AIConfig(provider="openai"))

        # Act & Assert
        assert as_config_provider(provider) is provider

    def test_rejects_other_values(self):
        """Test unsupported values raise TypeError."""
        # Act & Assert
        with pytest.raises(TypeError):
            as_config_provider(42)


class TestConfig:
    """Test Config loading and accessors."""

    def test_defaults_without_file(self):
        """Test defaults are used when no file is given."""
        # Act
        config = Config(None)

        # Assert
        assert config.get('ai.provider') == 'gemini'
        assert config.get('retry.max_retries') == 3
        assert config.get('retry.base_retry_delay_ms') == 60000
        assert config.get('transport.request_timeout_sec') == 120
        assert config.get('output.language') == 'en'

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        """Test a non-existent config file yields the defaults."""
        # Act
        config = Config(str(tmp_path / "missing.yml"))

        # Assert
        assert config.config == Config.DEFAULT_CONFIG

    def test_user_file_is_deep_merged(self, tmp_path):
        """Test user values override defaults without dropping siblings."""
        # Arrange
        path = tmp_path / ".ebook-ai.yml"
        path.write_text(yaml.safe_dump({
            'ai': {'provider': 'openai', 'model': 'gpt-4o-mini'},
            'retry': {'max_retries': 5},
        }), encoding='utf-8')

        # Act
        config = Config(str(path))

        # Assert
        assert config.get('ai.provider') == 'openai'
        assert config.get('ai.model') == 'gpt-4o-mini'
        assert config.get('ai.temperature') == 0.7
        assert config.get('retry.max_retries') == 5
        assert config.get('retry.base_retry_delay_ms') == 60000

    def test_empty_file_uses_defaults(self, tmp_path):
        """Test an empty YAML document does not break loading."""
        # Arrange
        path = tmp_path / "empty.yml"
        path.write_text("", encoding='utf-8')

        # Act
        config = Config(str(path))

        # Assert
        assert config.get('ai.provider') == 'gemini'

    def test_invalid_yaml_logs_warning_and_uses_defaults(self, tmp_path):
        """Test broken YAML is reported and ignored."""
        # Arrange
        path = tmp_path / "broken.yml"
        path.write_text("ai: [unclosed", encoding='utf-8')

        # Act
        with patch('ebook_ai.config.logger') as mock_logger:
            config = Config(str(path))

        # Assert
        mock_logger.warning.assert_called_once()
        assert config.get('ai.provider') == 'gemini'

    def test_get_returns_default_for_missing_keys(self):
        """Test dot-notation lookups of unknown keys."""
        # Arrange
        config = Config(None)

        # Act & Assert
        assert config.get('ai.unknown', 'fallback') == 'fallback'
        assert config.get('ai.provider.nested') is None

    @patch.dict(os.environ, {API_KEY_ENV_VAR: 'env-key'})
    def test_get_ai_config_uses_env_key(self):
        """Test the environment supplies a missing API key."""
        # Arrange
        config = Config(None)

        # Act
        ai_config = config.get_ai_config()

        # Assert
        assert ai_config.provider is Provider.GEMINI
        assert ai_config.api_key == 'env-key'
        assert ai_config.temperature == 0.7

    @patch.dict(os.environ, {API_KEY_ENV_VAR: 'env-key'})
    def test_get_ai_config_prefers_file_key(self):
        """Test a configured API key wins over the environment."""
        # Arrange
        config = Config(None)
        config.config['ai']['api_key'] = 'file-key'

        # Act & Assert
        assert config.get_ai_config().api_key == 'file-key'

    def test_get_ai_config_unknown_provider(self):
        """Test an unknown provider surfaces as a configuration error."""
        # Arrange
        config = Config(None)
        config.config['ai']['provider'] = 'claude'

        # Act & Assert
        with pytest.raises(ConfigurationError):
            config.get_ai_config()

    def test_get_prompt_config(self):
        """Test prompt overrides are mapped onto PromptConfig."""
        # Arrange
        config = Config(None)
        config.config['prompts']['chapter_summary']['fiction'] = 'Summarize {{title}}'
        config.config['prompts']['mindmap']['arrow'] = 'Arrows please'

        # Act
        prompts = config.get_prompt_config()

        # Assert
        assert prompts.chapter_summary_fiction == 'Summarize {{title}}'
        assert prompts.mindmap_arrow == 'Arrows please'
        assert prompts.chapter_summary_non_fiction == ''

    def test_get_generation_options(self):
        """Test retry settings and the usage callback are passed through."""
        # Arrange
        config = Config(None)
        config.config['retry'] = {'max_retries': '4', 'base_retry_delay_ms': 1000}
        sink = lambda tokens: None

        # Act
        options = config.get_generation_options(on_token_usage=sink)

        # Assert
        assert options.max_retries == 4
        assert options.base_retry_delay_ms == 1000
        assert options.on_token_usage is sink

    def test_create_sample_config_round_trips(self, tmp_path):
        """Test the sample file is valid YAML matching the defaults."""
        # Arrange
        path = tmp_path / "sample.yml"

        # Act
        Config(None).create_sample_config(str(path))
        loaded = Config(str(path))

        # Assert
        assert path.exists()
        assert loaded.config == Config.DEFAULT_CONFIG
