"""
schemaledger Migrations - File Discovery.

Loads SQL migrations from a directory and scaffolds new migration files.

Layout:
    migrations/
        20240101120000_create_users.up.sql
        20240101120000_create_users.down.sql   (optional)
        20240102093000_add_email_index.up.sql
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from schemaledger.exceptions import ConfigurationError, DuplicateVersionError
from schemaledger.migrations.base import SQLMigration
from schemaledger.migrations.sql import split_sql_statements
from schemaledger.observability.tracing import trace_method

logger = logging.getLogger(__name__)

UP_SUFFIX = ".up.sql"
DOWN_SUFFIX = ".down.sql"
VERSION_FORMAT = "%Y%m%d%H%M%S"

_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9_]+")


def get_migration_files(migrations_dir: Path) -> List[Path]:
    """
    Get all up-migration files from a migrations directory.

    Returns:
        Up-migration paths sorted by filename, empty if the directory is
        missing
    """
    if not migrations_dir.exists():
        return []

    return sorted(
        f for f in migrations_dir.glob(f"*{UP_SUFFIX}") if f.is_file()
    )


def parse_migration_filename(filename: str) -> Tuple[int, str]:
    """
    Split ``<version>_<name>.up.sql`` into version and name.

    Raises:
        ConfigurationError: If the prefix is not a positive integer
    """
    base = filename[: -len(UP_SUFFIX)] if filename.endswith(UP_SUFFIX) else filename
    version_part, _, name = base.partition("_")
    if not version_part.isdigit() or int(version_part) <= 0:
        raise ConfigurationError(
            f"Invalid migration filename {filename!r}: "
            "expected <version>_<name>.up.sql with a positive integer version"
        )
    return int(version_part), name or version_part


@trace_method(name="migrations.load_directory")
def load_migrations_from_directory(directory: Union[str, Path]) -> List[SQLMigration]:
    """
    Load SQL migrations from a directory.

    Each ``<version>_<name>.up.sql`` becomes one migration; a sibling
    ``<version>_<name>.down.sql`` makes it reversible.

    Args:
        directory: Directory holding the migration files

    Returns:
        Migrations sorted by version

    Raises:
        ConfigurationError: If a filename carries an invalid version, or a
            down file has no matching up file
        DuplicateVersionError: If two up files share a version
    """
    migrations_dir = Path(directory)
    migrations: List[SQLMigration] = []
    seen: Dict[int, str] = {}

    for up_path in get_migration_files(migrations_dir):
        version, name = parse_migration_filename(up_path.name)
        if version in seen:
            logger.error(
                f"Migration files {seen[version]} and {up_path.name} "
                f"share version {version}"
            )
            raise DuplicateVersionError(version)
        seen[version] = up_path.name

        down_path = up_path.with_name(up_path.name[: -len(UP_SUFFIX)] + DOWN_SUFFIX)
        down_sql = down_path.read_text(encoding="utf-8") if down_path.exists() else None

        migrations.append(
            SQLMigration(
                version=version,
                name=name,
                up_sql=up_path.read_text(encoding="utf-8"),
                down_sql=down_sql,
            )
        )

    orphans = sorted(
        p.name
        for p in migrations_dir.glob(f"*{DOWN_SUFFIX}")
        if not p.with_name(p.name[: -len(DOWN_SUFFIX)] + UP_SUFFIX).exists()
    )
    if orphans:
        raise ConfigurationError(
            f"Down migrations without a matching up migration: {', '.join(orphans)}"
        )

    migrations.sort(key=lambda m: m.version)
    logger.debug(f"Loaded {len(migrations)} migrations from {migrations_dir}")
    return migrations


def create_migration_files(
    directory: Union[str, Path],
    name: str,
    version: Optional[int] = None,
) -> Tuple[Path, Path]:
    """
    Create an empty up/down migration pair.

    Args:
        directory: Migrations directory, created if missing
        name: Human-readable name, normalized to lower snake case
        version: Explicit version; defaults to the current local time as
            ``YYYYMMDDHHMMSS``

    Returns:
        Paths of the up and down files

    Raises:
        ConfigurationError: If the name is empty or the files already exist
    """
    safe_name = _UNSAFE_NAME_CHARS.sub("_", name.strip().lower()).strip("_")
    if not safe_name:
        raise ConfigurationError(f"Invalid migration name: {name!r}")

    now = datetime.now()
    if version is None:
        version = int(now.strftime(VERSION_FORMAT))
    if version <= 0:
        raise ConfigurationError(f"Invalid migration version: {version}")

    migrations_dir = Path(directory)
    migrations_dir.mkdir(parents=True, exist_ok=True)

    base = f"{version}_{safe_name}"
    up_path = migrations_dir / f"{base}{UP_SUFFIX}"
    down_path = migrations_dir / f"{base}{DOWN_SUFFIX}"
    if up_path.exists() or down_path.exists():
        raise ConfigurationError(f"Migration files for {base} already exist")

    created = now.strftime("%Y-%m-%d %H:%M:%S")
    up_path.write_text(
        f"-- Migration: {name}\n-- Version: {version}\n-- Created: {created}\n\n"
        "-- Add your UP migration SQL here\n",
        encoding="utf-8",
    )
    down_path.write_text(
        f"-- Migration: {name} (rollback)\n-- Version: {version}\n-- Created: {created}\n\n"
        "-- Add your DOWN migration SQL here\n",
        encoding="utf-8",
    )

    logger.info(f"Created migration {base}")
    return up_path, down_path


__all__ = [
    "create_migration_files",
    "get_migration_files",
    "load_migrations_from_directory",
    "parse_migration_filename",
    "split_sql_statements",
]
