"""
Tests for the email-based User model and its manager.
"""

import pytest

from accounts.models import User


@pytest.mark.django_db
class TestUserManager:
    def test_create_user_normalizes_email(self):
        user = User.objects.create_user(email="Buyer@EXAMPLE.com", password="pw12345!")

        assert user.email == "Buyer@example.com"
        assert user.check_password("pw12345!")
        assert not user.is_staff
        assert not user.is_premium

    def test_create_user_without_password(self):
        user = User.objects.create_user(email="nopw@example.com")

        assert not user.has_usable_password()

    def test_email_required(self):
        with pytest.raises(ValueError, match="Email"):
            User.objects.create_user(email="")

    def test_create_superuser(self):
        admin = User.objects.create_superuser(email="ops@example.com", password="pw12345!")

        assert admin.is_staff
        assert admin.is_superuser

    def test_superuser_must_be_staff(self):
        with pytest.raises(ValueError, match="is_staff"):
            User.objects.create_superuser(
                email="ops@example.com", password="pw12345!", is_staff=False
            )

    def test_str_is_email(self):
        assert str(User(email="a@example.com")) == "a@example.com"
