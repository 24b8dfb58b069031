"""Tests for provider webhook intake."""
