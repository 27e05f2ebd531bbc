"""
Authz serializers.
"""
from rest_framework import serializers


class UserProfileSerializer(serializers.Serializer):
    """Current user: id, email, subject id and roles."""
    id = serializers.UUIDField()
    email = serializers.EmailField()
    subject_id = serializers.CharField()
    is_active = serializers.BooleanField()
    roles = serializers.ListField(child=serializers.CharField())
