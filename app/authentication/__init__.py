"""
Authentication application.

Provides the email-keyed User model and the platform roles consumed by
the payments and stores apps for authorization decisions.

Usage:
    from authentication.models import User, UserRole
"""
