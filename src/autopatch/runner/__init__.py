"""Test-runner adapters."""
