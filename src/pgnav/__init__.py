"""pgnav - definition, hover and completion for PostgreSQL source workspaces."""

__version__ = "0.1.0"
