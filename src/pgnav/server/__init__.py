"""Language server surface."""

from pgnav.server.app import PgNavLanguageServer, create_server, run

__all__ = ["PgNavLanguageServer", "create_server", "run"]
