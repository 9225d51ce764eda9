"""Tests for configuration file loading and merging."""

import logging
import tempfile
from pathlib import Path

import pytest

from secret_sieve.config import DEFAULT_EXCLUDE_GLOBS, DEFAULT_PLACEHOLDER, HIGH_CONFIDENCE_THRESHOLD
from secret_sieve.config_loader import (
    ProjectConfig,
    find_config_file,
    load_config,
    merge_cli_with_config,
)
from secret_sieve.errors import ConfigError


class TestConfigFileFinding:
    """Tests for finding config files."""

    def test_find_toml_config(self):
        """Test finding sieve.toml config file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            config_file = root / "sieve.toml"
            config_file.write_text("[sieve]\nhigh_confidence_threshold = 80\n")

            found = find_config_file(root)
            assert found == config_file

    def test_find_hidden_yaml_config(self):
        """Test finding .sieve.yml config file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            config_file = root / ".sieve.yml"
            config_file.write_text("high_confidence_threshold: 80\n")

            found = find_config_file(root)
            assert found == config_file

    def test_no_config_file(self):
        """Test when no config file exists."""
        with tempfile.TemporaryDirectory() as tmpdir:
            assert find_config_file(Path(tmpdir)) is None

    def test_config_file_priority(self):
        """Test that first matching file in priority order is found."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "sieve.toml").write_text("high_confidence_threshold = 1\n")
            (root / ".sieve.yml").write_text("high_confidence_threshold: 2\n")

            found = find_config_file(root)
            assert found.name == "sieve.toml"

    def test_directory_named_like_config_ignored(self):
        """Test that a directory with a config file name is not picked up."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "sieve.toml").mkdir()
            assert find_config_file(root) is None


class TestConfigLoading:
    """Tests for loading config from files."""

    def test_load_toml_config(self):
        """Test loading configuration from TOML file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "sieve.toml").write_text('''
[sieve]
high_confidence_threshold = 80
exclude_globs = ["fixtures/**", "*.snap"]
max_file_bytes = 2048
respect_gitignore = false
max_workers = 4
baseline_path = "security/baseline.json"
placeholder = "<removed>"
disabled_rules = ["HIGH_ENTROPY_STRING"]
''')

            config = load_config(root)

            assert config.high_confidence_threshold == 80
            assert config.exclude_globs == {"fixtures/**", "*.snap"}
            assert config.max_file_bytes == 2048
            assert config.respect_gitignore is False
            assert config.max_workers == 4
            assert config.baseline_path == Path("security/baseline.json")
            assert config.placeholder == "<removed>"
            assert config.disabled_rules == {"HIGH_ENTROPY_STRING"}
            assert config.follow_symlinks is None

    def test_load_yaml_config(self):
        """Test loading configuration from YAML file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / ".sieve.yml").write_text(
                "high_confidence_threshold: 60\n"
                "show_suppressed: true\n"
                "exclude_globs:\n"
                "  - docs/**\n"
            )

            config = load_config(root)

            assert config.high_confidence_threshold == 60
            assert config.show_suppressed is True
            assert config.exclude_globs == {"docs/**"}

    def test_load_top_level_toml(self):
        """Test that settings may sit outside a [sieve] section."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "sieve.toml").write_text("include_informational = true\n")

            config = load_config(root)
            assert config.include_informational is True

    def test_load_comma_separated_rules(self):
        """Test that list settings also accept a comma-separated string."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / ".sieve.yml").write_text('disabled_rules: "JWT_TOKEN, HIGH_ENTROPY_STRING"\n')

            config = load_config(root)
            assert config.disabled_rules == {"JWT_TOKEN", "HIGH_ENTROPY_STRING"}

    def test_explicit_config_path(self):
        """Test loading a config file passed explicitly."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            config_file = root / "ci" / "sieve-ci.yaml"
            config_file.parent.mkdir()
            config_file.write_text("max_workers: 2\n")

            config = load_config(root, config_file)
            assert config.max_workers == 2
            assert config._config_file == config_file

    def test_no_config_returns_empty(self):
        """Test that a tree without config yields all-None settings."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = load_config(Path(tmpdir))
            assert config.to_dict() == {}

    def test_missing_explicit_config(self):
        """Test that a missing explicit config file is an error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            with pytest.raises(ConfigError):
                load_config(root, root / "nope.toml")

    def test_invalid_toml_is_error(self):
        """Test that a config file that does not parse is an error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "sieve.toml").write_text("this is not [valid toml")

            with pytest.raises(ConfigError) as exc_info:
                load_config(root)
            assert "Invalid TOML" in str(exc_info.value)

    def test_invalid_yaml_is_error(self):
        """Test that malformed YAML is an error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / ".sieve.yml").write_text("exclude_globs: [unclosed\n")

            with pytest.raises(ConfigError):
                load_config(root)

    @pytest.mark.parametrize("content", [
        'high_confidence_threshold = "high"\n',
        "high_confidence_threshold = true\n",
        'respect_gitignore = "no"\n',
        "exclude_globs = 5\n",
    ])
    def test_wrong_types_are_errors(self, content):
        """Test that values of the wrong type are rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "sieve.toml").write_text(content)

            with pytest.raises(ConfigError):
                load_config(root)

    def test_unknown_rule_is_error(self):
        """Test that disabling a rule that does not exist is an error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "sieve.toml").write_text('disabled_rules = ["NOT_A_RULE"]\n')

            with pytest.raises(ConfigError) as exc_info:
                load_config(root)
            assert "NOT_A_RULE" in str(exc_info.value)

    def test_unknown_key_warns(self, caplog):
        """Test that unknown keys are logged and otherwise ignored."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "sieve.toml").write_text("max_tokens = 5\nmax_workers = 3\n")

            with caplog.at_level(logging.WARNING, logger="secret_sieve"):
                config = load_config(root)
            assert config.max_workers == 3
            assert "max_tokens" in caplog.text


class TestConfigMerging:
    """Tests for merging CLI args with config file values."""

    def test_cli_overrides_config(self):
        """Test that CLI arguments override config file values."""
        config = ProjectConfig(high_confidence_threshold=50, max_workers=2, placeholder="<cfg>")

        merged = merge_cli_with_config(
            config,
            high_confidence_threshold=90,
            max_workers=6,
            placeholder="<cli>",
        )

        assert merged.high_confidence_threshold == 90
        assert merged.max_workers == 6
        assert merged.placeholder == "<cli>"

    def test_config_values_used_when_cli_not_specified(self):
        """Test that config values are used when CLI doesn't specify."""
        config = ProjectConfig(
            high_confidence_threshold=50,
            exclude_globs={"docs/**"},
            baseline_path=Path("sec/baseline.json"),
            disabled_rules={"JWT_TOKEN"},
        )

        merged = merge_cli_with_config(config)

        assert merged.high_confidence_threshold == 50
        assert merged.exclude_globs == {"docs/**"}
        assert merged.baseline_path == Path("sec/baseline.json")
        assert merged.disabled_rules == {"JWT_TOKEN"}

    def test_defaults_used_when_neither_specified(self):
        """Test that defaults are used when neither CLI nor config specify."""
        merged = merge_cli_with_config(ProjectConfig())

        assert merged.high_confidence_threshold == HIGH_CONFIDENCE_THRESHOLD
        assert merged.exclude_globs == DEFAULT_EXCLUDE_GLOBS
        assert merged.placeholder == DEFAULT_PLACEHOLDER
        assert merged.respect_gitignore is True
        assert merged.include_informational is False
        assert merged.min_score == HIGH_CONFIDENCE_THRESHOLD

    def test_no_gitignore_flag(self):
        """Test that --no-gitignore wins over config."""
        merged = merge_cli_with_config(ProjectConfig(respect_gitignore=True), no_gitignore=True)
        assert merged.respect_gitignore is False

    def test_exclude_glob_string(self):
        """Test that comma-separated CLI globs are split."""
        merged = merge_cli_with_config(ProjectConfig(), exclude_glob="a/**, *.snap")
        assert merged.exclude_globs == {"a/**", "*.snap"}

    def test_include_informational_lowers_floor(self):
        """Test that --all lowers the reporting floor."""
        merged = merge_cli_with_config(ProjectConfig(), include_informational=True)
        assert merged.min_score == 40

    def test_unknown_cli_rule(self):
        """Test that unknown rule ids on the command line are rejected."""
        with pytest.raises(ConfigError):
            merge_cli_with_config(ProjectConfig(), disabled_rules="NOPE")

    def test_invalid_threshold(self):
        """Test that an out-of-range threshold is a config error."""
        with pytest.raises(ConfigError):
            merge_cli_with_config(ProjectConfig(), high_confidence_threshold=150)


class TestProjectConfigToDict:
    """Tests for ProjectConfig serialization."""

    def test_to_dict_sorted_keys(self):
        """Test that to_dict returns sorted keys."""
        config = ProjectConfig(max_workers=2, high_confidence_threshold=80, placeholder="X")
        keys = list(config.to_dict().keys())
        assert keys == sorted(keys)

    def test_to_dict_sorted_sets(self):
        """Test that set values serialize as sorted lists."""
        config = ProjectConfig(exclude_globs={"z/**", "a/**"})
        assert config.to_dict()["exclude_globs"] == ["a/**", "z/**"]

    def test_to_dict_includes_config_file_path(self):
        """Test that to_dict includes the config file path."""
        config = ProjectConfig(max_workers=1, _config_file=Path("/x/sieve.toml"))
        assert config.to_dict()["_loaded_from"] == "/x/sieve.toml"
