"""
Notifications app.

This app provides:
- Notification model for in-app messages to store owners
- NotificationService for creating them and enqueuing customer e-mail
- Celery task delivering refund receipts by e-mail

Usage:
    from notifications.services import NotificationService

    NotificationService.notify_company_owner(company, title, message)
"""
