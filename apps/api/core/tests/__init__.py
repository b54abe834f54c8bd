"""Tests for apps.api.core."""
