"""Unit tests for database scaffolding (foundry.database).

Tests cover:
- get_database lookup and unsupported engines
- env_section contents
- write_env_example: create, append, skip when present, warn on failure
- rendering the standard layout's database component per engine
"""

from __future__ import annotations

from pathlib import Path

import pytest

from foundry.database import (
    ENV_SECTION_HEADER,
    SUPPORTED_DATABASES,
    env_section,
    get_database,
    write_env_example,
)
from foundry.errors import NameValidationError
from foundry.layout import LayoutManager


class TestGetDatabase:
    @pytest.mark.unit
    def test_supported(self):
        assert set(SUPPORTED_DATABASES) == {"postgres", "mysql", "sqlite", "mongodb"}
        assert get_database("postgres").default_port == "5432"
        assert get_database("sqlite").default_port == ""

    @pytest.mark.unit
    def test_unsupported(self):
        with pytest.raises(NameValidationError, match="unsupported database type: oracle"):
            get_database("oracle")


class TestEnvExample:
    @pytest.mark.unit
    def test_section(self):
        text = env_section(get_database("mysql"))
        assert text.startswith(f"{ENV_SECTION_HEADER}\n# MySQL\n")
        assert "DB_PORT=3306\n" in text

    @pytest.mark.unit
    def test_creates_file(self, tmp_path: Path):
        assert write_env_example(tmp_path, get_database("postgres")) is True
        text = (tmp_path / ".env.example").read_text(encoding="utf-8")
        assert "DB_SSLMODE=disable" in text

    @pytest.mark.unit
    def test_appends_to_existing(self, tmp_path: Path):
        (tmp_path / ".env.example").write_text("PORT=8080", encoding="utf-8")

        assert write_env_example(tmp_path, get_database("mongodb")) is True

        text = (tmp_path / ".env.example").read_text(encoding="utf-8")
        assert text.startswith("PORT=8080\n\n# Database Configuration\n")
        assert "MONGO_URI=mongodb://localhost:27017" in text

    @pytest.mark.unit
    def test_existing_section_is_kept(self, tmp_path: Path):
        write_env_example(tmp_path, get_database("postgres"))
        before = (tmp_path / ".env.example").read_text(encoding="utf-8")

        assert write_env_example(tmp_path, get_database("mysql")) is False
        assert (tmp_path / ".env.example").read_text(encoding="utf-8") == before

    @pytest.mark.unit
    def test_write_failure_is_a_warning(self, tmp_path: Path, capsys):
        (tmp_path / ".env.example").mkdir()

        assert write_env_example(tmp_path, get_database("sqlite")) is False
        assert "Warning: could not update .env.example" in capsys.readouterr().out


class TestDatabaseComponent:
    @pytest.fixture
    def manager(self, config_path: Path) -> LayoutManager:
        return LayoutManager.from_config(config_path)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "engine, driver_import, open_call",
        [
            ("postgres", '_ "github.com/jackc/pgx/v5/stdlib"', 'sql.Open("pgx", cfg.DSN())'),
            ("mysql", '_ "github.com/go-sql-driver/mysql"', 'sql.Open("mysql", cfg.DSN())'),
            ("sqlite", '_ "github.com/mattn/go-sqlite3"', 'sql.Open("sqlite3", cfg.DSN())'),
        ],
    )
    async def test_sql_engines(self, manager, tmp_path: Path, engine, driver_import, open_call):
        path = await manager.generate_component("standard", "database", engine, tmp_path)
        text = path.read_text(encoding="utf-8")

        assert path == tmp_path / "internal" / "database" / f"{engine}.go"
        assert text.startswith("package database\n\nimport (\n")
        assert driver_import in text
        assert open_call in text
        assert "{%" not in text and "{{" not in text

    @pytest.mark.unit
    async def test_mongodb(self, manager, tmp_path: Path):
        path = await manager.generate_component("standard", "database", "mongodb", tmp_path)
        text = path.read_text(encoding="utf-8")

        assert '"go.mongodb.org/mongo-driver/mongo"' in text
        assert "database/sql" not in text
        assert 'getEnv("MONGO_URI", "mongodb://localhost:27017")' in text

    @pytest.mark.unit
    async def test_postgres_config_fields(self, manager, tmp_path: Path):
        path = await manager.generate_component("standard", "database", "postgres", tmp_path)
        text = path.read_text(encoding="utf-8")

        assert "\tSSLMode  string\n\tMaxOpenConns    int\n" in text
        assert 'SSLMode:  getEnv("DB_SSLMODE", "disable"),' in text
