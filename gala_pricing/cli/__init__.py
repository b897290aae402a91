"""Command-line entry points for gala_pricing."""
