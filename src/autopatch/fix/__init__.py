"""Patch generation and application."""
