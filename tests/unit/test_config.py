"""
Tests for configuration loading.
"""

import json
from pathlib import Path

import pytest
import yaml

from iis_procfinder.utils.config import (
    DEFAULT_APPCMD_PATH,
    DEFAULT_PROCESS_NAMES,
    ConfigLoader,
    ProcFinderConfig,
    load_config,
    save_tool_path,
)
from iis_procfinder.utils.errors import ConfigurationError


class TestDefaults:
    """Test configuration defaults."""

    def test_defaults(self):
        config = load_config(use_defaults=False)

        assert config.discovery.process_names == DEFAULT_PROCESS_NAMES
        assert config.discovery.appcmd_path == DEFAULT_APPCMD_PATH
        assert config.procdump.path is None
        assert config.procdump.accept_eula is True
        assert config.logging.level == "INFO"
        assert "debug" not in ProcFinderConfig.model_fields

    def test_empty_process_names_fall_back(self):
        config = ProcFinderConfig(discovery={"process_names": " , "})
        assert config.discovery.process_names == ["dotnet.exe"]

    def test_comma_separated_process_names(self):
        config = ProcFinderConfig(discovery={"process_names": "dotnet.exe, MyApp.exe ,"})
        assert config.discovery.process_names == ["dotnet.exe", "MyApp.exe"]

    def test_empty_tool_path_is_unset(self):
        config = ProcFinderConfig(procdump={"path": "  "})
        assert config.procdump.path is None

    def test_invalid_log_level(self):
        with pytest.raises(ConfigurationError):
            load_config(use_defaults=False, extra_config={"logging": {"level": "LOUD"}})


class TestSources:
    """Test file and environment sources."""

    def test_yaml_file(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("discovery:\n  process_names: [MyApp.exe]\nprocdump:\n  path: c:/tools/procdump.exe\n")

        config = load_config([path], use_defaults=False)

        assert config.discovery.process_names == ["MyApp.exe"]
        assert config.procdump.path == Path("c:/tools/procdump.exe")
        assert config.config_paths == [path]
        assert config.writable_config_path == path

    def test_json_and_toml_files(self, temp_dir):
        json_path = temp_dir / "config.json"
        json_path.write_text(json.dumps({"procdump": {"accept_eula": False}}))
        toml_path = temp_dir / "config.toml"
        toml_path.write_text('[discovery]\nprocess_names = "Svc.exe"\n')

        config = load_config([json_path, toml_path], use_defaults=False)

        assert config.procdump.accept_eula is False
        assert config.discovery.process_names == ["Svc.exe"]
        assert config.writable_config_path is None

    def test_later_file_wins(self, temp_dir):
        first = temp_dir / "first.yaml"
        first.write_text("discovery:\n  process_names: First.exe\n")
        second = temp_dir / "second.yaml"
        second.write_text("discovery:\n  process_names: Second.exe\n")

        config = load_config([first, second], use_defaults=False)

        assert config.discovery.process_names == ["Second.exe"]
        assert config.config_paths == [second, first]

    def test_standard_location_in_working_directory(self, temp_dir):
        (temp_dir / "iis-procfinder.yaml").write_text("procdump:\n  new_console: false\n")

        config = load_config()

        assert config.procdump.new_console is False

    def test_environment_overrides_files(self, temp_dir, monkeypatch):
        path = temp_dir / "config.yaml"
        path.write_text("discovery:\n  process_names: FromFile.exe\n")
        monkeypatch.setenv("IIS_PROCFINDER_DISCOVERY__PROCESS_NAMES", "dotnet.exe,FromEnv.exe")
        monkeypatch.setenv("IIS_PROCFINDER_PROCDUMP__ACCEPT_EULA", "no")

        config = load_config([path], use_defaults=False)

        assert config.discovery.process_names == ["dotnet.exe", "FromEnv.exe"]
        assert config.procdump.accept_eula is False

    def test_missing_explicit_file(self, temp_dir):
        with pytest.raises(ConfigurationError):
            load_config([temp_dir / "missing.yaml"], use_defaults=False)

    def test_malformed_file(self, temp_dir):
        path = temp_dir / "broken.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config([path], use_defaults=False)

        assert exc_info.value.cause is not None

    def test_non_mapping_file(self, temp_dir):
        path = temp_dir / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError):
            load_config([path], use_defaults=False)

    def test_unknown_file_type(self, temp_dir):
        with pytest.raises(ConfigurationError):
            ConfigLoader().add_source(temp_dir / "config.ini")

    def test_get_config_before_load(self):
        with pytest.raises(ConfigurationError):
            ConfigLoader().get_config()


class TestSaveToolPath:
    """Test persisting a manually supplied ProcDump path."""

    def test_creates_file(self, temp_dir):
        config_file = temp_dir / "nested" / "config.yaml"

        save_tool_path(Path("c:/tools/procdump.exe"), config_file)

        assert yaml.safe_load(config_file.read_text()) == {"procdump": {"path": "c:/tools/procdump.exe"}}

    def test_keeps_other_settings(self, temp_dir):
        config_file = temp_dir / "config.yaml"
        config_file.write_text("discovery:\n  process_names: MyApp.exe\nprocdump:\n  accept_eula: false\n")

        save_tool_path(Path("d:/procdump.exe"), config_file)

        data = yaml.safe_load(config_file.read_text())
        assert data["discovery"] == {"process_names": "MyApp.exe"}
        assert data["procdump"] == {"accept_eula": False, "path": "d:/procdump.exe"}

    def test_saved_path_is_loaded(self, temp_dir):
        config_file = temp_dir / "config.yaml"
        save_tool_path(Path("d:/procdump.exe"), config_file)

        assert load_config([config_file], use_defaults=False).procdump.path == Path("d:/procdump.exe")

    def test_unwritable_file(self, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("")

        with pytest.raises(ConfigurationError):
            save_tool_path(Path("d:/procdump.exe"), blocker / "config.yaml")
