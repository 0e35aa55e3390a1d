"""Command-line interface for postrpc."""
