"""
schemaledger Configuration.

Runner settings (``MigrationConfig``, ``TableConfig``) and the YAML
configuration loader used by the command line.
"""

from schemaledger.config.loader import ConfigLoader
from schemaledger.config.settings import (
    MigrationConfig,
    MigrationConfigBuilder,
    TableConfig,
)

__all__ = [
    "ConfigLoader",
    "MigrationConfig",
    "MigrationConfigBuilder",
    "TableConfig",
]
