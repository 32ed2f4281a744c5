"""Command-line interface for host-converge."""
