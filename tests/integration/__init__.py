"""Integration tests for livereindex."""
