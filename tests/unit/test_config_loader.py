"""Unit tests for the configuration loader."""

import pytest

from testmatrix.utils.config_loader import DATA_DIR_ENV, ConfigLoader, get_config_loader
from testmatrix.utils.exceptions import ConfigurationError


class TestConfigLoader:
    """Test settings loading."""

    def test_defaults_without_file(self, tmp_path):
        loader = ConfigLoader(tmp_path)

        assert loader.default_phases == ["Phase 1", "Phase 2", "Phase 3"]
        assert loader.default_cell_count == 1
        assert loader.get("workbooks.test_status") == "test_status.xlsx"
        assert loader.get("missing.key", "fallback") == "fallback"

    def test_file_overrides_defaults(self, tmp_path):
        (tmp_path / "settings.yaml").write_text(
            "propagation:\n  default_phases: [Build, Commission]\n  default_cell_count: 2\n",
            encoding="utf-8",
        )
        loader = ConfigLoader(tmp_path)

        assert loader.default_phases == ["Build", "Commission"]
        assert loader.default_cell_count == 2
        assert loader.get("workbooks.site_info") == "site_info.xlsx"

    def test_relative_data_dir_resolves_next_to_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv(DATA_DIR_ENV, raising=False)
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        loader = ConfigLoader(config_dir)

        assert loader.workbook_path("test_cases") == tmp_path / "data" / "test_cases.xlsx"

    def test_environment_overrides_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path / "elsewhere"))
        loader = ConfigLoader(tmp_path)

        assert loader.data_dir == tmp_path / "elsewhere"

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "settings.yaml").write_text("propagation: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ConfigLoader(tmp_path).load_settings()

    def test_invalid_cell_count(self, tmp_path):
        (tmp_path / "settings.yaml").write_text("propagation:\n  default_cell_count: 0\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ConfigLoader(tmp_path).default_cell_count

    def test_unknown_workbook(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigLoader(tmp_path).workbook_path("tickets")

    def test_global_loader_is_replaced_by_config_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr("testmatrix.utils.config_loader._config_loader", None)
        loader = get_config_loader(tmp_path)
        assert get_config_loader() is loader
        assert loader.config_dir == tmp_path
