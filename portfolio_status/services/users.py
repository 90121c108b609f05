"""
portfolio_status/services/users.py

User directory over two collections:
- auth:pendingUsers   sign-up requests waiting for an admin
- auth:approvedUsers  users allowed to log in

Rules:
- Email is unique across BOTH pools and matched case-sensitively, as stored.
- Only approved users can authenticate.
- Every write replaces a whole pool (read-modify-write of one key).

KNOWN RACE (accepted, single-admin usage):
record_login() reads the approved pool, stamps lastLogin on one user and writes the
whole pool back. Two logins that both read before either writes lose the first
writer's stamp (last write wins). Status changes that move a user between pools
write two keys with no transaction between them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from ..exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError
from ..models import User, UserRole, UserStatus, new_id, utcnow
from ..security import (
    generate_random_password,
    hash_password,
    validate_email_address,
    validate_password,
    verify_password,
)
from ..store import APPROVED_USERS_KEY, PENDING_USERS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

LOGIN_FAILED_MESSAGE = "Invalid email or password."


def _parse_role(role) -> UserRole:
    try:
        return UserRole(role or UserRole.USER)
    except ValueError as exc:
        raise ValidationError("Invalid role", details={"role": str(role)}) from exc


def _parse_status(status) -> UserStatus:
    try:
        return UserStatus(status)
    except ValueError as exc:
        raise ValidationError("Invalid status", details={"status": str(status)}) from exc


def _validate_name(name: str) -> str:
    if name is not None and not isinstance(name, str):
        raise ValidationError("Name must be a string", details={"name": "must be a string"})
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationError("Name must be at least 2 characters", details={"name": "too short"})
    return name


def stamp_last_login(users: List[User], email: str, when: datetime) -> List[User]:
    """Copy of `users` with lastLogin set on the user(s) matching `email`."""
    return [
        u.model_copy(update={"last_login": when}) if u.email == email else u
        for u in users
    ]


class UserDirectory:
    """Typed access to the pending/approved user pools."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------
    def get_pending_users(self) -> List[User]:
        return self.store.get_collection(PENDING_USERS_KEY, User)

    def get_approved_users(self) -> List[User]:
        return self.store.get_collection(APPROVED_USERS_KEY, User)

    def get_all_users(self) -> List[User]:
        """Pending first, then approved."""
        return self.get_pending_users() + self.get_approved_users()

    def find_user_by_email(self, email: str) -> Optional[User]:
        """
        First user whose email equals `email` exactly (pending pool searched first).

        Returns None when absent; raises StorageUnavailable on store errors.
        """
        for user in self.get_all_users():
            if user.email == email:
                return user
        return None

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        for user in self.get_all_users():
            if user.id == user_id:
                return user
        return None

    def find_approved_by_id(self, user_id: str) -> Optional[User]:
        for user in self.get_approved_users():
            if user.id == user_id:
                return user
        return None

    # -----------------------------------------------------------------
    # Whole-pool writes
    # -----------------------------------------------------------------
    def replace_pending_users(self, users: List[User]) -> bool:
        return self.store.set_collection(PENDING_USERS_KEY, users)

    def replace_approved_users(self, users: List[User]) -> bool:
        return self.store.set_collection(APPROVED_USERS_KEY, users)

    @staticmethod
    def _put(pool: List[User], user: User) -> List[User]:
        if any(u.id == user.id for u in pool):
            return [user if u.id == user.id else u for u in pool]
        return pool + [user]

    def _ensure_email_free(self, email: str, exclude_id: Optional[str] = None) -> None:
        existing = self.find_user_by_email(email)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError("User with this email already exists", details={"email": email})

    # -----------------------------------------------------------------
    # Registration & approval
    # -----------------------------------------------------------------
    def register(self, name: str, email: str, password: str) -> User:
        """Create a pending sign-up request."""
        name = _validate_name(name)
        validate_email_address(email)
        validate_password(password)
        self._ensure_email_free(email)

        user = User(
            id=new_id("user"),
            name=name,
            email=email,
            password=hash_password(password),
            requested_at=utcnow(),
            status=UserStatus.PENDING,
            role=UserRole.USER,
        )
        pending = self.get_pending_users()
        pending.append(user)
        self.replace_pending_users(pending)
        logger.info("Sign-up request stored for %s", email)
        return user

    def approve(self, email: str, role: str | None = None) -> User:
        """Move a pending user to the approved pool."""
        new_role = _parse_role(role)
        pending = self.get_pending_users()
        match = next((u for u in pending if u.email == email), None)
        if match is None:
            raise NotFoundError("Pending user", email)

        approved_user = match.model_copy(
            update={"status": UserStatus.APPROVED, "approved_at": utcnow(), "role": new_role}
        )
        approved = self.get_approved_users()
        approved.append(approved_user)

        self.replace_approved_users(approved)
        self.replace_pending_users([u for u in pending if u.id != match.id])
        logger.info("Approved %s as %s", email, new_role.value)
        return approved_user

    def deny(self, email: str) -> User:
        """Drop a pending request."""
        pending = self.get_pending_users()
        match = next((u for u in pending if u.email == email), None)
        if match is None:
            raise NotFoundError("Pending user", email)
        self.replace_pending_users([u for u in pending if u.id != match.id])
        logger.info("Denied sign-up request of %s", email)
        return match

    # -----------------------------------------------------------------
    # Admin management
    # -----------------------------------------------------------------
    def create_user(
        self,
        name: str,
        email: str,
        role: str = "user",
        status: str = "approved",
        password: Optional[str] = None,
    ) -> Tuple[User, Optional[str]]:
        """
        Create a user directly in either pool.

        Returns (user, generated_password); generated_password is None when the
        caller supplied one.
        """
        name = _validate_name(name)
        validate_email_address(email)
        new_role = _parse_role(role)
        new_status = _parse_status(status)
        generated = None
        if password:
            validate_password(password)
        else:
            password = generated = generate_random_password()
        self._ensure_email_free(email)

        now = utcnow()
        user = User(
            id=new_id(new_role.value),
            name=name,
            email=email,
            password=hash_password(password),
            requested_at=now,
            approved_at=now if new_status == UserStatus.APPROVED else None,
            status=new_status,
            role=new_role,
        )
        if new_status == UserStatus.PENDING:
            pool = self.get_pending_users()
            pool.append(user)
            self.replace_pending_users(pool)
        else:
            pool = self.get_approved_users()
            pool.append(user)
            self.replace_approved_users(pool)
        logger.info("Created %s user %s (%s)", new_status.value, email, new_role.value)
        return user, generated

    def update_user(
        self,
        user_id: str,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[str] = None,
        status: Optional[str] = None,
    ) -> User:
        """Edit a user; a status change moves the record between pools."""
        pending = self.get_pending_users()
        approved = self.get_approved_users()
        current = next((u for u in pending + approved if u.id == user_id), None)
        if current is None:
            raise NotFoundError("User", user_id)

        changes = {}
        if name:
            changes["name"] = _validate_name(name)
        if email and email != current.email:
            validate_email_address(email)
            self._ensure_email_free(email, exclude_id=user_id)
            changes["email"] = email
        if role:
            changes["role"] = _parse_role(role)
        new_status = _parse_status(status) if status else current.status
        changes["status"] = new_status
        if new_status == UserStatus.APPROVED and current.approved_at is None:
            changes["approved_at"] = utcnow()
        if new_status == UserStatus.PENDING:
            changes["approved_at"] = None

        updated = current.model_copy(update=changes)

        # same pool: replace in place; other pool: remove and append
        if new_status == UserStatus.APPROVED:
            pending = [u for u in pending if u.id != user_id]
            approved = self._put(approved, updated)
        else:
            approved = [u for u in approved if u.id != user_id]
            pending = self._put(pending, updated)

        self.replace_pending_users(pending)
        self.replace_approved_users(approved)
        logger.info("Updated user %s", user_id)
        return updated

    def delete_user(self, user_id: str, acting_user_id: Optional[str] = None) -> User:
        if acting_user_id is not None and acting_user_id == user_id:
            raise ValidationError("You cannot delete your own account")

        pending = self.get_pending_users()
        approved = self.get_approved_users()
        target = next((u for u in pending + approved if u.id == user_id), None)
        if target is None:
            raise NotFoundError("User", user_id)

        self.replace_pending_users([u for u in pending if u.id != user_id])
        self.replace_approved_users([u for u in approved if u.id != user_id])
        logger.info("Deleted user %s (%s)", user_id, target.email)
        return target

    def reset_password(self, user_id: str, new_password: Optional[str] = None) -> Optional[str]:
        """
        Set a new password for any user.

        Returns the generated password when `new_password` was not supplied.
        """
        generated = None
        if new_password:
            if len(new_password) < 8:
                raise ValidationError(
                    "Password must be at least 8 characters",
                    details={"newPassword": "too short"},
                )
        else:
            new_password = generated = generate_random_password()
        hashed = hash_password(new_password)

        found = False
        for key in (PENDING_USERS_KEY, APPROVED_USERS_KEY):
            pool = self.store.get_collection(key, User)
            if any(u.id == user_id for u in pool):
                found = True
                pool = [u.model_copy(update={"password": hashed}) if u.id == user_id else u for u in pool]
                self.store.set_collection(key, pool)
        if not found:
            raise NotFoundError("User", user_id)

        logger.info("Password reset for user %s", user_id)
        return generated

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = self.find_approved_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        if not verify_password(current_password or "", user.password):
            raise ValidationError("Current password is incorrect")
        validate_password(new_password)
        if verify_password(new_password, user.password):
            raise ValidationError("New password must be different from current password")

        hashed = hash_password(new_password)
        approved = self.get_approved_users()
        self.replace_approved_users(
            [u.model_copy(update={"password": hashed}) if u.id == user_id else u for u in approved]
        )
        logger.info("Password changed for user %s", user_id)

    def setup_admin(self, name: str, email: str, password: str, setup_key: str, expected_key: str) -> User:
        """Bootstrap the FIRST admin. Refused once any admin exists."""
        if not expected_key or setup_key != expected_key:
            raise AuthenticationError("Invalid admin setup key")

        name = _validate_name(name)
        validate_email_address(email)
        validate_password(password)

        approved = self.get_approved_users()
        if any(u.role == UserRole.ADMIN for u in approved):
            raise ConflictError("An admin user already exists. Use the normal signup process.")
        self._ensure_email_free(email)

        now = utcnow()
        admin = User(
            id=new_id("admin"),
            name=name,
            email=email,
            password=hash_password(password),
            requested_at=now,
            approved_at=now,
            status=UserStatus.APPROVED,
            role=UserRole.ADMIN,
        )
        approved.append(admin)
        self.replace_approved_users(approved)
        logger.info("First admin created: %s", email)
        return admin

    # -----------------------------------------------------------------
    # Login
    # -----------------------------------------------------------------
    def authenticate(self, email: str, password: str) -> User:
        """
        Verify credentials of an approved user and stamp lastLogin.

        Raises AuthenticationError with the same generic message whether the user
        is missing, pending, or the password is wrong.
        """
        user = self.find_user_by_email(email)
        if user is None or user.status != UserStatus.APPROVED:
            raise AuthenticationError(LOGIN_FAILED_MESSAGE)
        if not verify_password(password or "", user.password):
            raise AuthenticationError(LOGIN_FAILED_MESSAGE)

        when = utcnow()
        self.record_login(email, when)
        return user.model_copy(update={"last_login": when})

    def record_login(self, email: str, when: datetime) -> None:
        """Whole-collection read-modify-write of the approved pool (see KNOWN RACE)."""
        approved = self.get_approved_users()
        self.replace_approved_users(stamp_last_login(approved, email, when))
