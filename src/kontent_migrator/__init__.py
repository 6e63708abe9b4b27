"""
Kontent.ai Content-Type Migration Tool

Copies content items from one content type to another, remapping fields,
auto-migrating linked items of the same type and rewriting references so
that other items point at the migrated copies.
"""

from __future__ import annotations

from .cli import main
from .config import KontentConfig, MigrationSettings, load_config
from .exceptions import CodenameCollisionError, MigrationConfigError, MigrationError
from .item_migrator import ItemMigrator, migrated_codename
from .kontent_client import KontentClient
from .mapping import build_field_mappings
from .orchestrator import MigrationOrchestrator, MigrationOutcome, MigrationRequest
from .publisher import BatchPublisher
from .relationships import RelationshipDiscoverer
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "BatchPublisher",
    "CodenameCollisionError",
    "ItemMigrator",
    "KontentClient",
    "KontentConfig",
    "MigrationConfigError",
    "MigrationError",
    "MigrationOrchestrator",
    "MigrationOutcome",
    "MigrationRequest",
    "MigrationSettings",
    "RelationshipDiscoverer",
    "build_field_mappings",
    "load_config",
    "main",
    "migrated_codename",
    "setup_logging",
]
