"""
Unit Tests for the admin guard
"""
import pytest

from schoolsite.core.exceptions import AuthenticationError, AuthorizationError
from schoolsite.models.user import User, AdminStatus
from schoolsite.modules.auth.guard import require_admin, is_admin


class TestAdminStatus:
    """The stored flag is nullable; only an explicit True means admin"""

    @pytest.mark.parametrize("flag, expected", [
        (True, AdminStatus.ADMIN),
        (False, AdminStatus.NON_ADMIN),
        (None, AdminStatus.NON_ADMIN),
    ])
    def test_admin_status_from_flag(self, flag, expected):
        assert User(is_admin=flag).admin_status == expected


class TestRequireAdmin:

    def test_no_caller_is_not_authenticated(self):
        with pytest.raises(AuthenticationError):
            require_admin(None)

    def test_non_admin_is_not_authorized(self):
        with pytest.raises(AuthorizationError):
            require_admin(User(email="parent@school.in", is_admin=False))

    def test_unset_flag_is_not_authorized(self):
        with pytest.raises(AuthorizationError):
            require_admin(User(email="parent@school.in", is_admin=None))

    def test_anonymous_user_is_not_authorized(self):
        with pytest.raises(AuthorizationError):
            require_admin(User(is_anonymous=True))

    def test_admin_passes_through(self):
        admin = User(email="head@school.in", is_admin=True)

        assert require_admin(admin) is admin


class TestIsAdmin:

    def test_signed_out_is_false(self):
        assert is_admin(None) is False

    def test_admin_is_true(self):
        assert is_admin(User(is_admin=True)) is True

    def test_non_admin_is_false(self):
        assert is_admin(User(is_admin=None)) is False
