"""
Identity serializers.

UserSerializer produces the public user record embedded in chat
snapshots: string id, display name, photo, email and presence.
"""

from rest_framework import serializers

from identity.models import User


class UserSerializer(serializers.ModelSerializer):
    """Public user record. Ids are strings on the wire."""

    id = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "display_name",
            "photo_url",
            "email",
            "is_online",
            "last_seen",
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Fields a user may change about themselves."""

    class Meta:
        model = User
        fields = ["display_name", "photo_url"]

    def validate_display_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Display name cannot be blank.")
        return value
