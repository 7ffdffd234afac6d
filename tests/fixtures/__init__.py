"""Shared test fixtures for docsync."""
