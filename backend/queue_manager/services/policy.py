from __future__ import annotations
"""Authorization helpers.

Roles are read from the live profile on every check, never trusted from the
token alone. This is UX gating for the operator dashboard; the store-side
guards (conditional writes, ownership predicates) are what keep data sane.
"""
from typing import Set
from flask import abort, current_app
from flask_jwt_extended import get_jwt_identity
from queue_manager.constants.permissions import ADMIN_ONLY_PERMISSIONS
from queue_manager.services.auth import find_profile, permissions_for, revoke_current_token


def current_uid() -> str:
    return str(get_jwt_identity())


def current_profile():
    return find_profile(current_uid())


def current_permissions() -> Set[str]:
    return set(permissions_for(current_profile()))


def has_permissions(*codes: str) -> bool:
    perms = current_permissions()
    return all(c in perms for c in codes)


def deny(codes) -> None:
    """Refuse the request; operator-only flows also end the caller's session."""
    uid = current_uid()
    if ADMIN_ONLY_PERMISSIONS.intersection(codes):
        revoke_current_token(reason='forced-sign-out')
        current_app.logger.warning('Non-admin %s reached operator flow %s; session terminated', uid, sorted(codes))
        abort(403, description='Admin access required; session terminated')
    current_app.logger.warning('Permission denied for %s: %s', uid, sorted(codes))
    abort(403, description='Missing permission')


def is_admin() -> bool:
    profile = current_profile()
    return bool(profile and profile.is_admin)
