"""Test-output parsing and error classification."""
