"""Tests for the command-line interface (foundry.cli).

Every invocation passes ``--config`` pointing at an isolated registry
configuration; gofmt is patched out where routes are rewritten.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from foundry import __version__
from foundry.cli import _parse_vars, build_parser, main
from foundry.routes import RouteUpdater


@pytest.fixture
def run(config_path: Path):
    """``run(*argv) -> exit code`` with ``--config`` prefilled."""
    def invoke(*argv: str) -> int:
        return main(["--config", str(config_path), *argv])

    return invoke


@pytest.fixture
def no_gofmt():
    with patch.object(RouteUpdater, "validate_go_file", AsyncMock(return_value=None)) as mock:
        yield mock


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    @pytest.mark.unit
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--version"])
        assert excinfo.value.code == 0
        assert __version__ in capsys.readouterr().out

    @pytest.mark.unit
    def test_command_is_required(self):
        with pytest.raises(SystemExit) as excinfo:
            build_parser().parse_args([])
        assert excinfo.value.code == 2

    @pytest.mark.unit
    def test_parse_vars(self):
        assert _parse_vars(["Port=9000", "Empty=", "Url=a=b"]) == {
            "Port": "9000",
            "Empty": "",
            "Url": "a=b",
        }

    @pytest.mark.unit
    def test_bad_var_is_a_usage_error(self, run, tmp_path: Path):
        with pytest.raises(SystemExit) as excinfo:
            run("new", "shop", "-o", str(tmp_path / "shop"), "--var", "nope")
        assert excinfo.value.code == 2

    @pytest.mark.unit
    def test_unknown_component_type_rejected(self, run):
        with pytest.raises(SystemExit):
            run("add", "service", "billing")


# ---------------------------------------------------------------------------
# new / add / wire
# ---------------------------------------------------------------------------


class TestNew:
    @pytest.mark.unit
    def test_creates_standard_project(self, run, tmp_path: Path, capsys):
        target = tmp_path / "shop"
        code = run(
            "new", "shop",
            "--module", "github.com/acme/shop",
            "--var", "Port=9000",
            "-o", str(target),
        )

        assert code == 0
        assert (target / "go.mod").read_text(encoding="utf-8").startswith(
            "module github.com/acme/shop\n"
        )
        assert 'port = "9000"' in (target / "cmd" / "server" / "main.go").read_text(encoding="utf-8")
        assert (target / ".gitignore").exists()
        assert "Created project shop" in capsys.readouterr().out

    @pytest.mark.unit
    def test_unknown_layout_exits_1(self, run, tmp_path: Path, capsys):
        code = run("new", "shop", "--layout", "ghost", "-o", str(tmp_path / "shop"))
        assert code == 1
        assert "Error: layout 'ghost' not found" in capsys.readouterr().out
        assert not (tmp_path / "shop").exists()


class TestAddAndWire:
    @pytest.fixture
    def project(self, run, tmp_path: Path) -> Path:
        target = tmp_path / "shop"
        assert run("new", "shop", "--module", "github.com/acme/shop", "-o", str(target)) == 0
        return target

    @pytest.mark.unit
    def test_add_model(self, run, project: Path):
        assert run("add", "model", "order", "--project", str(project)) == 0
        assert (project / "internal" / "models" / "order.go").exists()

    @pytest.mark.unit
    def test_add_handler_wires_routes(self, run, project: Path, no_gofmt):
        assert run("add", "handler", "user", "--project", str(project), "--yes") == 0

        routes = (project / "internal" / "routes" / "routes.go").read_text(encoding="utf-8")
        assert '"github.com/acme/shop/internal/handlers"' in routes
        assert "userHandler := handlers.NewUserHandler()" in routes
        no_gofmt.assert_awaited_once()

    @pytest.mark.unit
    def test_add_handler_no_wire(self, run, project: Path, no_gofmt):
        before = (project / "internal" / "routes" / "routes.go").read_bytes()
        assert run("add", "handler", "user", "--project", str(project), "--no-wire") == 0
        assert (project / "internal" / "handlers" / "user.go").exists()
        assert (project / "internal" / "routes" / "routes.go").read_bytes() == before
        no_gofmt.assert_not_awaited()

    @pytest.mark.unit
    def test_invalid_component_name(self, run, project: Path, capsys):
        assert run("add", "handler", "func", "--project", str(project)) == 1
        assert "reserved keyword" in capsys.readouterr().out

    @pytest.mark.unit
    def test_wire_dry_run(self, routes_project: Path, run, capsys, no_gofmt):
        before = (routes_project / "internal" / "routes" / "routes.go").read_bytes()

        assert run("wire", "handler", "user", "--project", str(routes_project), "--dry-run") == 0

        out = capsys.readouterr().out
        assert "Add import" in out
        assert "Dry run" in out
        assert (routes_project / "internal" / "routes" / "routes.go").read_bytes() == before

    @pytest.mark.unit
    def test_wire_declined(self, routes_project: Path, run, no_gofmt):
        before = (routes_project / "internal" / "routes" / "routes.go").read_bytes()
        with patch("foundry.cli.Confirm.ask", return_value=False):
            assert run("wire", "handler", "user", "--project", str(routes_project)) == 0
        assert (routes_project / "internal" / "routes" / "routes.go").read_bytes() == before

    @pytest.mark.unit
    def test_add_database(self, run, project: Path, capsys):
        assert run("add", "database", "postgres", "--project", str(project)) == 0

        code = (project / "internal" / "database" / "postgres.go").read_text(encoding="utf-8")
        assert "package database" in code
        assert "DB_HOST=localhost" in (project / ".env.example").read_text(encoding="utf-8")
        out = capsys.readouterr().out
        assert "Added PostgreSQL support" in out
        assert "go get github.com/jackc/pgx/v5" in out

    @pytest.mark.unit
    def test_add_database_env_failure_is_not_fatal(self, run, project: Path, capsys):
        (project / ".env.example").mkdir()

        assert run("add", "database", "sqlite", "--project", str(project)) == 0

        assert (project / "internal" / "database" / "sqlite.go").exists()
        out = capsys.readouterr().out
        assert "Warning: could not update .env.example" in out
        assert "Added SQLite support" in out

    @pytest.mark.unit
    def test_add_unsupported_database(self, run, project: Path, capsys):
        assert run("add", "database", "oracle", "--project", str(project)) == 1
        assert "unsupported database type" in capsys.readouterr().out
        assert not (project / "internal" / "database").exists()

    @pytest.mark.unit
    def test_wire_middleware(self, run, project: Path, no_gofmt, capsys):
        assert run("add", "middleware", "auth", "--project", str(project)) == 0
        assert run("wire", "middleware", "auth", "--project", str(project), "--yes") == 0

        routes = (project / "internal" / "routes" / "routes.go").read_text(encoding="utf-8")
        assert 'appmiddleware "github.com/acme/shop/internal/middleware"' in routes
        assert routes.index("r.Use(middleware.RealIP)") < routes.index("r.Use(appmiddleware.Auth)")
        assert routes.index("r.Use(appmiddleware.Auth)") < routes.index('r.Route("/api/v1"')
        no_gofmt.assert_awaited_once()
        assert "Wired auth middleware" in capsys.readouterr().out

    @pytest.mark.unit
    def test_wire_middleware_dry_run(self, run, project: Path, no_gofmt, capsys):
        assert run("add", "middleware", "cors", "--project", str(project)) == 0
        before = (project / "internal" / "routes" / "routes.go").read_bytes()

        assert run("wire", "middleware", "cors", "--project", str(project), "--dry-run") == 0

        assert "r.Use(appmiddleware.Cors)" in capsys.readouterr().out
        assert (project / "internal" / "routes" / "routes.go").read_bytes() == before
        no_gofmt.assert_not_awaited()

    @pytest.mark.unit
    def test_wire_middleware_requires_generated_file(self, run, project: Path, capsys):
        assert run("wire", "middleware", "auth", "--project", str(project), "--yes") == 1
        assert "foundry add middleware auth" in capsys.readouterr().out

    @pytest.mark.unit
    def test_wire_twice_fails(self, routes_project: Path, run, capsys, no_gofmt):
        assert run("wire", "handler", "user", "--project", str(routes_project), "--yes") == 0
        assert run("wire", "handler", "user", "--project", str(routes_project), "--yes") == 1
        assert "already registered" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# layout subcommands
# ---------------------------------------------------------------------------


class TestLayoutCommands:
    @pytest.mark.unit
    def test_list(self, run, sample_layout_dir: Path, capsys):
        assert run("layout", "list") == 0
        out = capsys.readouterr().out
        assert "standard" in out
        assert "sample" in out

    @pytest.mark.unit
    def test_info(self, run, capsys):
        assert run("layout", "info", "standard") == 0
        out = capsys.readouterr().out
        assert "standard" in out
        assert "Port" in out
        assert "handler" in out

    @pytest.mark.unit
    def test_add_and_remove(self, run, capsys):
        assert run("layout", "add", "https://example.com/layouts/api-v2.tar.gz") == 0
        assert "Added layout api-v2" in capsys.readouterr().out

        assert run("layout", "remove", "api-v2") == 0
        capsys.readouterr()
        assert run("layout", "list") == 0
        assert "api-v2" not in capsys.readouterr().out

    @pytest.mark.unit
    def test_add_rejects_bad_name(self, run, capsys):
        assert run("layout", "add", "https://example.com/x.tar.gz", "--name", "bad name") == 1
        assert "invalid layout name" in capsys.readouterr().out

    @pytest.mark.unit
    def test_refresh(self, run, capsys):
        assert run("layout", "refresh") == 0
        assert "refreshed" in capsys.readouterr().out

    @pytest.mark.unit
    def test_cache_list_and_clear(self, run, tmp_path: Path, capsys):
        assert run("layout", "cache", "list") == 0
        assert "Cache is empty" in capsys.readouterr().out

        assert run("layout", "info", "standard") == 0
        capsys.readouterr()
        assert run("layout", "cache", "list") == 0
        assert "standard" in capsys.readouterr().out

        assert run("layout", "cache", "clear", "--yes") == 0
        capsys.readouterr()
        assert run("layout", "cache", "list") == 0
        assert "Cache is empty" in capsys.readouterr().out
