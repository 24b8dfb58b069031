"""
Tests for notifications app.

This package contains test modules for:
- test_services.py: NotificationService and refund receipt task tests

Usage:
    pytest app/notifications/tests/
"""
