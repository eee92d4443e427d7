"""
Tests for configuration file loader.
"""
import pytest

from pipeline_doctor.config_loader import (
    load_yaml_file,
    load_toml_file,
    load_config_file,
    find_config_file,
    get_env_config,
    deep_merge,
    flatten_config,
    merge_config,
    load_config_with_overrides,
)


class TestLoadYAMLFile:
    """Tests for YAML file loading."""

    def test_load_valid_yaml(self, tmp_path):
        """Test loading a valid YAML file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
store:
  backend: dynamodb
  table: SelfHealingIncidents
remediation:
  max_retries: 3
""")

        config = load_yaml_file(config_file)

        assert config["store"]["table"] == "SelfHealingIncidents"
        assert config["remediation"]["max_retries"] == 3

    def test_load_empty_yaml(self, tmp_path):
        """Test loading an empty YAML file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        assert load_yaml_file(config_file) == {}

    def test_load_nonexistent_yaml(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "nonexistent.yaml")

    def test_load_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("store: [unclosed")

        with pytest.raises(ValueError, match="Failed to parse YAML"):
            load_yaml_file(config_file)


class TestLoadTOMLFile:
    """Tests for TOML file loading."""

    def test_load_valid_toml(self, tmp_path):
        """Test loading a valid TOML file."""
        config_file = tmp_path / "config.toml"
        config_file.write_text("""
[notifications]
topic_arn = "arn:aws:sns:us-east-1:123456789012:doctor"

[remediation]
backoff_seconds = 10
""")

        config = load_toml_file(config_file)

        assert config["notifications"]["topic_arn"].endswith(":doctor")
        assert config["remediation"]["backoff_seconds"] == 10

    def test_load_nonexistent_toml(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_toml_file(tmp_path / "nonexistent.toml")

    def test_load_invalid_toml(self, tmp_path):
        config_file = tmp_path / "config.toml"
        config_file.write_text("[remediation\nmax_retries = ")

        with pytest.raises(ValueError, match="Failed to parse TOML"):
            load_toml_file(config_file)


class TestLoadConfigFile:
    """Tests for generic config file loading."""

    def test_load_by_extension(self, tmp_path):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text("aws:\n  region: us-east-1")
        toml_file = tmp_path / "config.toml"
        toml_file.write_text('[aws]\nregion = "eu-west-1"')

        assert load_config_file(str(yaml_file))["aws"]["region"] == "us-east-1"
        assert load_config_file(str(toml_file))["aws"]["region"] == "eu-west-1"

    def test_unsupported_extension(self, tmp_path):
        """Test that unsupported extensions raise an error."""
        config_file = tmp_path / "config.json"
        config_file.write_text("{}")

        with pytest.raises(ValueError, match="Unsupported config file format"):
            load_config_file(str(config_file))


class TestFindConfigFile:
    def test_finds_file_in_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "pipeline-doctor.toml").write_text("")

        assert find_config_file() == tmp_path / "pipeline-doctor.toml"

    def test_yaml_preferred_over_toml(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "pipeline-doctor.toml").write_text("")
        (tmp_path / "pipeline-doctor.yaml").write_text("")

        assert find_config_file() == tmp_path / "pipeline-doctor.yaml"


class TestGetEnvConfig:
    """Tests for environment variable configuration."""

    def test_store_and_notification_vars(self, monkeypatch):
        monkeypatch.setenv("TABLE", "SelfHealingIncidents")
        monkeypatch.setenv("TOPIC_ARN", "arn:aws:sns:us-east-1:123456789012:doctor")
        monkeypatch.setenv("PIPELINE_DOCTOR_STORE_BACKEND", "dynamodb")

        config = get_env_config()

        assert config["store"] == {"backend": "dynamodb", "table": "SelfHealingIncidents"}
        assert config["notifications"]["topic_arn"].endswith(":doctor")

    def test_remediation_vars(self, monkeypatch):
        monkeypatch.setenv("MAX_RETRIES", "5")
        monkeypatch.setenv("PIPELINE_DOCTOR_BACKOFF_SECONDS", "12")
        monkeypatch.setenv("PIPELINE_DOCTOR_SUPPRESS_REPEAT_ESCALATIONS", "yes")

        config = get_env_config()

        assert config["remediation"] == {
            "max_retries": 5,
            "backoff_seconds": 12,
            "suppress_repeat_escalations": True,
        }

    def test_invalid_int_is_ignored(self, monkeypatch):
        monkeypatch.setenv("MAX_RETRIES", "many")

        assert "remediation" not in get_env_config()

    def test_out_of_range_int_is_ignored(self, monkeypatch):
        """Values below the minimum leave the default in place."""
        monkeypatch.setenv("MAX_RETRIES", "-1")
        monkeypatch.setenv("PIPELINE_DOCTOR_BACKOFF_SECONDS", "0")
        monkeypatch.setenv("PIPELINE_DOCTOR_TIMEOUT_CEILING_MINUTES", "0")

        assert get_env_config() == {"remediation": {"backoff_seconds": 0}}

    def test_logging_env_vars(self, monkeypatch):
        """Test logging environment variables."""
        monkeypatch.setenv("PIPELINE_DOCTOR_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("PIPELINE_DOCTOR_LOG_FILE", "/var/log/test.log")

        config = get_env_config()

        assert config["logging"]["level"] == "DEBUG"
        assert config["logging"]["file"] == "/var/log/test.log"

    def test_empty_env(self):
        """Test with no environment variables set."""
        assert get_env_config() == {}


class TestDeepMerge:
    """Tests for deep dictionary merging."""

    def test_nested_merge(self):
        base = {"store": {"backend": "sqlite", "sqlite_path": "a.db"}}
        override = {"store": {"sqlite_path": "b.db"}}

        assert deep_merge(base, override) == {"store": {"backend": "sqlite", "sqlite_path": "b.db"}}

    def test_base_is_not_mutated(self):
        base = {"a": {"b": 1}}
        deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}


class TestFlattenConfig:
    """Tests for configuration flattening."""

    def test_flatten_complete_config(self):
        config = {
            "store": {"backend": "dynamodb", "table": "T"},
            "notifications": {"topic_arn": "arn"},
            "remediation": {"max_retries": 3, "stage_retry_mode": "ALL_ACTIONS"},
            "aws": {"region": "us-east-1"},
            "server": {"webhook_secret": "s"},
            "logging": {"level": "INFO", "json": True},
        }

        assert flatten_config(config) == {
            "store_backend": "dynamodb",
            "table_name": "T",
            "topic_arn": "arn",
            "max_retries": 3,
            "stage_retry_mode": "ALL_ACTIONS",
            "region": "us-east-1",
            "webhook_secret": "s",
            "log_level": "INFO",
            "log_json": True,
        }

    def test_unknown_keys_are_ignored(self):
        assert flatten_config({"llm": {"provider": "x"}, "store": {"color": "red"}}) == {}


class TestMergeConfig:
    def test_env_overrides_file(self):
        file_config = {"store": {"backend": "sqlite"}, "remediation": {"max_retries": 1}}
        env_config = {"remediation": {"max_retries": 4}}

        assert merge_config(file_config, env_config) == {"store_backend": "sqlite", "max_retries": 4}


class TestLoadConfigWithOverrides:
    """Tests for complete configuration loading with overrides."""

    def test_load_toml_with_env_override(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.toml"
        config_file.write_text("""
[store]
backend = "dynamodb"
table = "FileTable"

[remediation]
timeout_ceiling_minutes = 60
""")
        monkeypatch.setenv("TABLE", "EnvTable")

        config = load_config_with_overrides(str(config_file))

        assert config["store_backend"] == "dynamodb"
        assert config["table_name"] == "EnvTable"
        assert config["timeout_ceiling_minutes"] == 60

    def test_load_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("PIPELINE_DOCTOR_STORE_BACKEND", "memory")

        config = load_config_with_overrides(None)

        assert config["store_backend"] == "memory"
