"""
Stores application.

Tenant-side data the payment core reads and writes: companies and their
provider credentials, customers, coupons, orders and the activity log.
Menu, table and kitchen features are handled elsewhere and only meet
this app through Order rows.

Usage:
    from stores.models import Company, Order, OrderItem
"""
