"""Shared helpers. async_helpers: logged background tasks and bounded waits."""
