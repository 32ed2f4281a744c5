"""Services used by the CLI."""
