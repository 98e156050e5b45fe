"""pgnav command line interface."""
