"""
Serializers for authentication models.

This module provides DRF serializers for:
- User model (read operations)

Related files:
    - models.py: User model
    - views.py: Views that use these serializers
"""

from rest_framework import serializers

from authentication.models import User


class UserSerializer(serializers.ModelSerializer):
    """
    Serializer for User model (read operations).

    Includes the stores the user owns or works for, so the dashboard can
    pick the tenant without another request.
    """

    is_platform_admin = serializers.BooleanField(read_only=True)
    companies = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "full_name",
            "role",
            "is_platform_admin",
            "companies",
            "date_joined",
        ]
        read_only_fields = fields

    def get_companies(self, obj) -> list[str]:
        owned = obj.owned_companies.values_list("id", flat=True)
        staffed = obj.staff_companies.values_list("id", flat=True)
        return sorted({str(pk) for pk in owned} | {str(pk) for pk in staffed})
