"""
Tests for authentication app.

This package contains test modules for:
- test_models.py: User model, manager and platform roles

Usage:
    pytest app/authentication/tests/
"""
