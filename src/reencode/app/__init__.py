"""Composition root, settings and CLI entry point."""
