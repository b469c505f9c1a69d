"""Unit tests for Go project helpers (foundry.project)."""

from __future__ import annotations

from pathlib import Path

import pytest

from foundry.project import find_project_root, read_module_name


class TestReadModuleName:
    @pytest.mark.unit
    def test_reads_module_directive(self, tmp_path: Path):
        (tmp_path / "go.mod").write_text(
            "// comment\nmodule github.com/acme/shop\n\ngo 1.22\n", encoding="utf-8"
        )
        assert read_module_name(tmp_path) == "github.com/acme/shop"

    @pytest.mark.unit
    def test_missing_go_mod_defaults(self, tmp_path: Path):
        assert read_module_name(tmp_path) == "myapp"

    @pytest.mark.unit
    def test_go_mod_without_module_defaults(self, tmp_path: Path):
        (tmp_path / "go.mod").write_text("go 1.22\n", encoding="utf-8")
        assert read_module_name(tmp_path) == "myapp"


class TestFindProjectRoot:
    @pytest.mark.unit
    def test_walks_upwards(self, routes_project: Path):
        nested = routes_project / "internal" / "routes"
        assert find_project_root(nested) == routes_project.resolve()

    @pytest.mark.unit
    def test_none_without_go_mod(self, tmp_path: Path):
        lonely = tmp_path / "a" / "b"
        lonely.mkdir(parents=True)
        assert find_project_root(lonely) is None
