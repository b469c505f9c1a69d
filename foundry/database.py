"""Database scaffolding for generated projects.

The Go connection code comes from the layout's ``database`` component; the
component name picks the engine (``foundry add database postgres``).  This
module knows the supported engines and writes the matching settings to the
project's ``.env.example``.  A failure there is reported as a warning and
never undoes the generated code.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from foundry.errors import NameValidationError
from foundry.utils import print_warning, write_text

ENV_EXAMPLE_FILENAME = ".env.example"
ENV_SECTION_HEADER = "# Database Configuration"


@dataclass(frozen=True)
class DatabaseInfo:
    """One supported engine and the settings its generated code reads."""

    type: str
    description: str
    driver: str
    driver_module: str
    default_port: str
    env: tuple[tuple[str, str], ...]


SUPPORTED_DATABASES: dict[str, DatabaseInfo] = {
    "postgres": DatabaseInfo(
        type="postgres",
        description="PostgreSQL",
        driver="pgx",
        driver_module="github.com/jackc/pgx/v5",
        default_port="5432",
        env=(
            ("DB_HOST", "localhost"),
            ("DB_PORT", "5432"),
            ("DB_NAME", "myapp"),
            ("DB_USER", "postgres"),
            ("DB_PASSWORD", "postgres"),
            ("DB_SSLMODE", "disable"),
        ),
    ),
    "mysql": DatabaseInfo(
        type="mysql",
        description="MySQL",
        driver="mysql",
        driver_module="github.com/go-sql-driver/mysql",
        default_port="3306",
        env=(
            ("DB_HOST", "localhost"),
            ("DB_PORT", "3306"),
            ("DB_NAME", "myapp"),
            ("DB_USER", "root"),
            ("DB_PASSWORD", "mysql"),
        ),
    ),
    "sqlite": DatabaseInfo(
        type="sqlite",
        description="SQLite",
        driver="sqlite3",
        driver_module="github.com/mattn/go-sqlite3",
        default_port="",
        env=(("DB_PATH", "./data/app.db"),),
    ),
    "mongodb": DatabaseInfo(
        type="mongodb",
        description="MongoDB",
        driver="mongo",
        driver_module="go.mongodb.org/mongo-driver",
        default_port="27017",
        env=(
            ("MONGO_URI", "mongodb://localhost:27017"),
            ("MONGO_DATABASE", "myapp"),
        ),
    ),
}


def get_database(db_type: str) -> DatabaseInfo:
    """Look up a supported engine.

    Raises:
        NameValidationError: If ``db_type`` is not supported.
    """
    info = SUPPORTED_DATABASES.get(db_type)
    if info is None:
        raise NameValidationError(
            f"unsupported database type: {db_type} "
            f"(supported: {', '.join(SUPPORTED_DATABASES)})",
            database=db_type,
        )
    return info


def env_section(info: DatabaseInfo) -> str:
    lines = [ENV_SECTION_HEADER, f"# {info.description}"]
    lines += [f"{key}={value}" for key, value in info.env]
    return "\n".join(lines) + "\n"


def write_env_example(project_root: str | Path, info: DatabaseInfo) -> bool:
    """Create or extend ``.env.example`` with the engine's settings.

    Returns:
        ``True`` if the file was written, ``False`` if it already has a
        database section or could not be written (a warning is printed).
    """
    path = Path(project_root) / ENV_EXAMPLE_FILENAME
    try:
        existing = path.read_text(encoding="utf-8") if path.exists() else ""
        if ENV_SECTION_HEADER in existing:
            return False
        separator = "\n" if existing and not existing.endswith("\n") else ""
        if existing:
            separator += "\n"
        write_text(path, existing + separator + env_section(info))
    except OSError as exc:
        print_warning(f"could not update {ENV_EXAMPLE_FILENAME}: {exc}")
        return False
    return True
