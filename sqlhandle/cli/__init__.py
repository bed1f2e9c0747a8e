"""Command line interface for SQLHandle."""
