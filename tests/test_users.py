"""
UserDirectory tests.

Tests cover:
  - email lookup across the pending and approved pools
  - registration, approval, denial and admin edits
  - authentication and the lastLogin stamp (including the known lost-update race)
  - password reset/change and first-admin bootstrap
"""

import fakeredis
import pytest

from portfolio_status.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageUnavailable,
    ValidationError,
)
from portfolio_status.models import User, UserRole, UserStatus
from portfolio_status.security import PASSWORD_REGEX, verify_password
from portfolio_status.services import UserDirectory
from portfolio_status.services.users import LOGIN_FAILED_MESSAGE, stamp_last_login
from portfolio_status.store import KeyValueStore

from conftest import ADMIN_PASSWORD, T0, T1, USER_PASSWORD


def _user(user_id, email, status=UserStatus.APPROVED):
    return User(
        id=user_id,
        name="Some One",
        email=email,
        password="not-a-real-hash",
        requested_at=T0,
        status=status,
    )


# ═══════════════════════════════════════════════════════════════
# LOOKUP
# ═══════════════════════════════════════════════════════════════

def test_find_user_by_email_absent(directory):
    assert directory.find_user_by_email("nobody@company.com") is None


def test_find_user_by_email_exact_match_only(directory, regular_user):
    assert directory.find_user_by_email("rui.user@company.com").id == regular_user.id
    assert directory.find_user_by_email("Rui.User@company.com") is None


def test_find_user_by_email_searches_pending_first(directory):
    directory.replace_pending_users([_user("u-pending", "dup@company.com", UserStatus.PENDING)])
    directory.replace_approved_users([_user("u-approved", "dup@company.com")])
    assert directory.find_user_by_email("dup@company.com").id == "u-pending"


def test_find_user_by_email_store_failure():
    server = fakeredis.FakeServer()
    server.connected = False
    directory = UserDirectory(KeyValueStore(lambda: fakeredis.FakeRedis(server=server, decode_responses=True)))
    with pytest.raises(StorageUnavailable):
        directory.find_user_by_email("rui.user@company.com")


# ═══════════════════════════════════════════════════════════════
# REGISTRATION & APPROVAL
# ═══════════════════════════════════════════════════════════════

def test_register_creates_pending_user_with_hashed_password(directory):
    user = directory.register("New Person", "new.person@company.com", "Secret@123")
    [pending] = directory.get_pending_users()
    assert pending.id == user.id
    assert pending.status == UserStatus.PENDING
    assert pending.password != "Secret@123"
    assert verify_password("Secret@123", pending.password)


def test_register_validates_input(directory, regular_user):
    with pytest.raises(ValidationError):
        directory.register("New Person", "not-an-email", "Secret@123")
    with pytest.raises(ValidationError):
        directory.register("New Person", "new.person@company.com", "weakpassword")
    with pytest.raises(ValidationError):
        directory.register("N", "new.person@company.com", "Secret@123")
    with pytest.raises(ConflictError):
        directory.register("Rui Again", regular_user.email, "Secret@123")


def test_approve_moves_user_between_pools(directory):
    directory.register("New Person", "new.person@company.com", "Secret@123")
    approved = directory.approve("new.person@company.com", role="admin")

    assert directory.get_pending_users() == []
    assert [u.id for u in directory.get_approved_users()] == [approved.id]
    assert approved.status == UserStatus.APPROVED
    assert approved.role == UserRole.ADMIN
    assert approved.approved_at is not None


def test_approve_and_deny_unknown_email(directory):
    with pytest.raises(NotFoundError):
        directory.approve("ghost@company.com")
    with pytest.raises(NotFoundError):
        directory.deny("ghost@company.com")


def test_deny_drops_request(directory):
    directory.register("New Person", "new.person@company.com", "Secret@123")
    directory.deny("new.person@company.com")
    assert directory.get_all_users() == []


# ═══════════════════════════════════════════════════════════════
# ADMIN MANAGEMENT
# ═══════════════════════════════════════════════════════════════

def test_create_user_generates_password(directory):
    user, generated = directory.create_user("Gen Erated", "gen@company.com")
    assert PASSWORD_REGEX.match(generated)
    assert verify_password(generated, user.password)
    assert directory.find_approved_by_id(user.id) is not None


def test_update_user_to_pending_moves_pool(directory, regular_user):
    updated = directory.update_user(regular_user.id, status="pending", name="Rui Renamed")
    assert updated.approved_at is None
    assert directory.get_approved_users() == []
    [pending] = directory.get_pending_users()
    assert (pending.id, pending.name) == (regular_user.id, "Rui Renamed")


def test_update_user_email_must_be_free(directory, regular_user, admin_user):
    with pytest.raises(ConflictError):
        directory.update_user(regular_user.id, email=admin_user.email)


def test_delete_user(directory, admin_user, regular_user):
    with pytest.raises(ValidationError):
        directory.delete_user(admin_user.id, acting_user_id=admin_user.id)

    directory.delete_user(regular_user.id, acting_user_id=admin_user.id)
    assert directory.find_user_by_id(regular_user.id) is None
    with pytest.raises(NotFoundError):
        directory.delete_user(regular_user.id, acting_user_id=admin_user.id)


def test_reset_password(directory, regular_user):
    generated = directory.reset_password(regular_user.id)
    stored = directory.find_user_by_id(regular_user.id)
    assert verify_password(generated, stored.password)

    assert directory.reset_password(regular_user.id, "Another@123") is None
    with pytest.raises(ValidationError):
        directory.reset_password(regular_user.id, "short")
    with pytest.raises(NotFoundError):
        directory.reset_password("user-404")


def test_change_password(directory, regular_user):
    with pytest.raises(ValidationError):
        directory.change_password(regular_user.id, "wrong", "Changed@123")
    with pytest.raises(ValidationError):
        directory.change_password(regular_user.id, USER_PASSWORD, USER_PASSWORD)

    directory.change_password(regular_user.id, USER_PASSWORD, "Changed@123")
    assert directory.authenticate(regular_user.email, "Changed@123").id == regular_user.id


def test_setup_admin(directory):
    with pytest.raises(AuthenticationError):
        directory.setup_admin("First Admin", "first@company.com", ADMIN_PASSWORD, "wrong", "expected")

    admin = directory.setup_admin("First Admin", "first@company.com", ADMIN_PASSWORD, "expected", "expected")
    assert admin.is_admin

    with pytest.raises(ConflictError):
        directory.setup_admin("Second Admin", "second@company.com", ADMIN_PASSWORD, "expected", "expected")


# ═══════════════════════════════════════════════════════════════
# LOGIN
# ═══════════════════════════════════════════════════════════════

def test_authenticate_stamps_last_login(directory, regular_user):
    user = directory.authenticate(regular_user.email, USER_PASSWORD)
    assert user.last_login is not None
    assert directory.find_approved_by_id(regular_user.id).last_login == user.last_login


@pytest.mark.parametrize(
    "email,password",
    [
        ("rui.user@company.com", "Wrong@1234"),
        ("ghost@company.com", USER_PASSWORD),
        ("pending@company.com", "Secret@123"),
    ],
)
def test_authenticate_failures_share_one_message(directory, regular_user, email, password):
    directory.register("Pen Ding", "pending@company.com", "Secret@123")
    with pytest.raises(AuthenticationError) as exc_info:
        directory.authenticate(email, password)
    assert str(exc_info.value) == LOGIN_FAILED_MESSAGE


def test_concurrent_login_stamps_lose_first_update(directory, admin_user, regular_user):
    """Two read-modify-writes of the approved pool: the later write wins."""
    first_snapshot = directory.get_approved_users()
    second_snapshot = directory.get_approved_users()

    directory.replace_approved_users(stamp_last_login(first_snapshot, admin_user.email, T0))
    directory.replace_approved_users(stamp_last_login(second_snapshot, regular_user.email, T1))

    assert directory.find_approved_by_id(admin_user.id).last_login is None
    assert directory.find_approved_by_id(regular_user.id).last_login == T1
