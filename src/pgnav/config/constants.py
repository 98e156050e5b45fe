"""Configuration constants.

Values here are protocol or dialect facts, not user-configurable settings.
For configurable values, see models.py.
"""

DEFAULT_SCHEMA = "public"
"""Schema PostgreSQL puts first on a fresh search_path."""

CONFIG_DIR_NAME = ".pgnav"
"""Per-repository config directory."""

DISABLE_MARKER = "pgnav:disable"
"""Comment marker on a document's first line that turns every feature off for it."""

CLIENT_SETTINGS_SECTION = "pgnav"
"""Section requested from the editor via workspace/configuration."""

PORT_MIN = 0
PORT_MAX = 65535
"""Valid port range."""
