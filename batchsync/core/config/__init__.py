"""
Import configuration loaded from YAML files.
"""

from .import_config import NAMED_COMPARATORS, ImportConfigLoader, ImportDefinition

__all__ = ["ImportConfigLoader", "ImportDefinition", "NAMED_COMPARATORS"]
