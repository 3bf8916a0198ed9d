"""
Factory Boy factories for identity models.

Usage:
    from identity.tests.factories import UserFactory

    user = UserFactory()
    ann = UserFactory(display_name="Ann")
    offline = UserFactory(is_online=False, last_seen=timezone.now())
"""

import factory

from identity.models import User


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for User model.

    Creates active users through UserManager.create_user() so passwords
    are hashed the same way as real sign-ups.
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    email = factory.Sequence(lambda n: f"user{n}@example.com")
    display_name = factory.Sequence(lambda n: f"User {n}")
    is_active = True
    is_staff = False

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        """Override create to use UserManager.create_user()."""
        password = kwargs.pop("password", "TestPass123!")
        return model_class.objects.create_user(
            email=kwargs.pop("email"), password=password, **kwargs
        )
