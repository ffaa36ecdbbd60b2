"""Tests for kt.utils module."""

from pathlib import Path

from kt.utils import (
    DEFAULT_EMBED_DIMENSION,
    DEFAULT_EMBED_MODEL,
    DEFAULT_OLLAMA_HOST,
    KtConfig,
    default_db_path,
    find_vault_root,
    get_kt_home,
    resolve_db_path,
)


class TestPaths:
    def test_kt_home_from_env(self, kt_data_dir):
        assert get_kt_home() == kt_data_dir

    def test_kt_home_default(self, monkeypatch, tmp_path):
        monkeypatch.delenv("KT_DATA_DIR")
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        assert get_kt_home() == tmp_path / ".kt"
        assert (tmp_path / ".kt").is_dir()

    def test_db_path_defaults_to_home(self, kt_data_dir):
        assert default_db_path() == kt_data_dir / "kt.db"

    def test_db_path_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("KT_DB_PATH", str(tmp_path / "custom.db"))
        assert default_db_path() == tmp_path / "custom.db"


class TestKtConfig:
    def test_defaults(self, kt_data_dir):
        config = KtConfig.from_env()
        assert config.db_path == kt_data_dir / "kt.db"
        assert config.ollama_host == DEFAULT_OLLAMA_HOST
        assert config.embed_model == DEFAULT_EMBED_MODEL
        assert config.embed_dimension == DEFAULT_EMBED_DIMENSION
        assert config.log_level == "INFO"
        assert config.api_key is None

    def test_explicit_db_path_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KT_DB_PATH", str(tmp_path / "env.db"))
        assert KtConfig.from_env(tmp_path / "arg.db").db_path == tmp_path / "arg.db"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("KT_OLLAMA_HOST", "http://gpu-box:11434")
        monkeypatch.setenv("KT_EMBED_MODEL", "mxbai-embed-large")
        monkeypatch.setenv("KT_EMBED_DIMENSION", "1024")
        monkeypatch.setenv("KT_SUMMARY_MODEL", "claude-haiku")
        monkeypatch.setenv("KT_LOG_LEVEL", "DEBUG")
        config = KtConfig.from_env()
        assert config.ollama_host == "http://gpu-box:11434"
        assert config.embed_model == "mxbai-embed-large"
        assert config.embed_dimension == 1024
        assert config.summary_model == "claude-haiku"
        assert config.log_level == "DEBUG"

    def test_invalid_dimension_ignored(self, monkeypatch):
        monkeypatch.setenv("KT_EMBED_DIMENSION", "lots")
        assert KtConfig.from_env().embed_dimension == DEFAULT_EMBED_DIMENSION

    def test_api_key_precedence(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "anthropic-key")
        assert KtConfig.from_env().api_key == "anthropic-key"
        monkeypatch.setenv("CLAUDE_API_KEY", "claude-key")
        assert KtConfig.from_env().api_key == "claude-key"


def make_vault(root: Path) -> Path:
    (root / ".kt").mkdir(parents=True)
    (root / ".kt" / "kt.db").touch()
    return root


class TestVaultResolution:
    def test_finds_vault_walking_up(self, tmp_path):
        vault = make_vault(tmp_path / "notes")
        deep = vault / "clients" / "acme"
        deep.mkdir(parents=True)
        assert find_vault_root(deep) == vault.resolve()
        assert resolve_db_path(deep) == vault.resolve() / ".kt" / "kt.db"

    def test_falls_back_to_global_db(self, tmp_path, kt_data_dir):
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        assert find_vault_root(elsewhere) is None
        assert resolve_db_path(elsewhere) == kt_data_dir / "kt.db"

    def test_env_db_path_beats_vault(self, tmp_path, monkeypatch):
        vault = make_vault(tmp_path / "notes")
        monkeypatch.setenv("KT_DB_PATH", str(tmp_path / "env.db"))
        assert resolve_db_path(vault) == tmp_path / "env.db"

    def test_bare_kt_dir_is_not_a_vault(self, tmp_path):
        (tmp_path / "project" / ".kt").mkdir(parents=True)
        assert find_vault_root(tmp_path / "project") is None

    def test_global_home_is_not_a_vault(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        monkeypatch.setenv("KT_DATA_DIR", str(home / ".kt"))
        make_vault(home)
        project = home / "project"
        project.mkdir()
        assert find_vault_root(project) is None

    def test_config_records_vault_root(self, tmp_path):
        vault = make_vault(tmp_path / "notes")
        config = KtConfig.from_env(cwd=vault / "sub")
        assert config.vault_root == vault.resolve()
        assert config.db_path == vault.resolve() / ".kt" / "kt.db"

    def test_explicit_db_path_skips_vault(self, tmp_path):
        vault = make_vault(tmp_path / "notes")
        config = KtConfig.from_env(tmp_path / "arg.db", cwd=vault)
        assert config.vault_root is None
