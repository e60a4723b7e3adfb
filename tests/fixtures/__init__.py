"""Shared test fixtures and in-memory fakes."""
