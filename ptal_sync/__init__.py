"""Keeps Discord PTAL announcements in sync with GitHub pull requests."""
