"""Tests for MCP server module."""

import pytest

import dit.server as server_module
from dit.server import main


# Fixtures temp_root, config and engine are provided by conftest.py


class TestServerImports:
    """Test server module imports and HAS_MCP flag."""

    def test_server_module_attributes(self):
        """The module is importable regardless of MCP availability."""
        assert hasattr(server_module, "HAS_MCP")
        assert hasattr(server_module, "create_server")
        assert hasattr(server_module, "run_server")
        assert hasattr(server_module, "main")


class TestCreateServer:
    """Tests for create_server function."""

    def test_create_server_without_mcp_raises(self, config, monkeypatch):
        monkeypatch.setattr(server_module, "HAS_MCP", False)
        with pytest.raises(ImportError, match="MCP package not installed"):
            server_module.create_server(config)

    @pytest.mark.skipif(not server_module.HAS_MCP, reason="MCP not installed")
    def test_create_server_with_mcp(self, config):
        assert server_module.create_server(config) is not None


class TestRunServer:
    """Tests for run_server function."""

    @pytest.mark.asyncio
    async def test_run_server_without_mcp_raises(self, config, monkeypatch):
        monkeypatch.setattr(server_module, "HAS_MCP", False)
        with pytest.raises(ImportError, match="MCP package not installed"):
            await server_module.run_server(config)


class TestMain:
    """Tests for the command line entry point."""

    def test_init_creates_directory(self, temp_root, capsys):
        root = temp_root / "data"
        main(["-d", str(root), "--init"])

        assert root.is_dir()
        assert "Initialized dit directory" in capsys.readouterr().out

    def test_rebuild_index(self, temp_root, capsys):
        (temp_root / "foo.toml").write_text(
            'title = "Foo"\n[[log]]\nstart = "2020-01-01 10:00:00 +0100"\n'
            'end = "2020-01-01 11:00:00 +0100"\n',
            encoding="utf-8",
        )
        (temp_root / "bar.toml").write_text('title = "Bar"\n', encoding="utf-8")

        main(["--directory", str(temp_root), "--rebuild-index"])

        assert "Rebuilt index: 1 of 2 tasks" in capsys.readouterr().out
        assert (temp_root / ".index").exists()

    def test_rebuild_index_replaces_corrupt_index(self, temp_root, capsys):
        (temp_root / "foo.toml").write_text('title = "Foo"\n', encoding="utf-8")
        (temp_root / ".index").write_text("garbage = = =", encoding="utf-8")

        main(["-d", str(temp_root), "--rebuild-index"])

        assert "Rebuilt index: 0 of 1 tasks" in capsys.readouterr().out
        assert (temp_root / ".index").read_text(encoding="utf-8") == ""

    def test_rebuild_index_failure_exits(self, temp_root, capsys):
        (temp_root / "foo.toml").write_text("garbage = = =", encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            main(["-d", str(temp_root), "--rebuild-index"])

        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_bad_config_exits(self, temp_root, capsys):
        (temp_root / ".ditrc.toml").write_text("not = = toml", encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            main(["-d", str(temp_root), "--init"])

        assert exc_info.value.code == 1
        assert "Error loading config" in capsys.readouterr().err

    def test_without_mcp_exits(self, temp_root, monkeypatch, capsys):
        monkeypatch.setattr(server_module, "HAS_MCP", False)

        with pytest.raises(SystemExit) as exc_info:
            main(["-d", str(temp_root)])

        assert exc_info.value.code == 1
        assert "MCP package not installed" in capsys.readouterr().err
