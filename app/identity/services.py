"""
Identity services.

IdentityService is the default IdentityProvider for the chat core:
directory lookups for participant resolution and the presence flags
maintained on sign-in/sign-out.

Related files:
    - models.py: User
    - views.py: LoginView/LogoutView call set_online()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService, ServiceResult
from identity.models import User

if TYPE_CHECKING:
    from typing import Any


class IdentityService(BaseService):
    """
    Directory and presence operations.

    Usage:
        result = IdentityService.get_user(user_id)
        if result.success:
            user = result.data

        others = IdentityService.list_users(exclude_user_id=request.user.id).data
    """

    @classmethod
    def get_user(cls, user_id: Any) -> ServiceResult[User]:
        """Fetch an active user by id."""
        try:
            user = User.objects.get(pk=user_id, is_active=True)
        except (User.DoesNotExist, ValueError, TypeError):
            return cls.not_found(f"User {user_id} not found")
        return ServiceResult.success(user)

    @classmethod
    def get_users(cls, user_ids: list[Any]) -> dict[int, User]:
        """Bulk lookup keyed by id. Unknown or inactive ids are absent."""
        try:
            users = User.objects.filter(pk__in=user_ids, is_active=True)
            return {user.pk: user for user in users}
        except (ValueError, TypeError):
            return {}

    @classmethod
    def list_users(cls, exclude_user_id: Any = None) -> ServiceResult[list[User]]:
        """
        Return active users ordered by display name.

        Args:
            exclude_user_id: Usually the caller, who should not appear
                in their own "start a chat" list.
        """
        queryset = User.objects.filter(is_active=True).order_by("display_name", "id")
        if exclude_user_id is not None:
            queryset = queryset.exclude(pk=exclude_user_id)
        return ServiceResult.success(list(queryset))

    @classmethod
    def set_online(cls, user_id: Any, is_online: bool) -> ServiceResult[None]:
        """
        Flip the presence flag and stamp last_seen.

        Uses a single UPDATE so concurrent sign-in/sign-out from two
        devices resolves as last-write-wins.
        """
        updated = User.objects.filter(pk=user_id).update(
            is_online=is_online,
            last_seen=timezone.now(),
        )
        if not updated:
            return cls.not_found(f"User {user_id} not found")

        cls.get_logger().debug(f"User {user_id} is_online={is_online}")
        return ServiceResult.success(None)
