from __future__ import annotations
"""Identity helpers: profiles, token issuance and revocation.

Profiles are created lazily the first time an authenticated identity shows up
(sign-up, federated sign-in, or a session lookup for a token whose profile is
gone). Sign-out and forced sign-out both land in the revoked_tokens table,
which the JWT blocklist loader consults on every request.
"""
import uuid
from typing import Any, Dict, Optional

import jwt as pyjwt
from flask import abort, current_app
from flask_jwt_extended import create_access_token, get_jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from queue_manager import get_db
from queue_manager.constants.permissions import ROLE_PRESETS
from queue_manager.models.authz import Profile, RevokedToken
from queue_manager.utils.timeutil import utcnow


def new_uid() -> str:
    return uuid.uuid4().hex


def find_profile(uid: str) -> Optional[Profile]:
    return get_db().get(Profile, uid)


def find_profile_by_email(email: str) -> Optional[Profile]:
    session = get_db()
    return session.execute(select(Profile).where(Profile.email == email.strip().lower())).scalar_one_or_none()


def permissions_for(profile: Optional[Profile]):
    if profile is None or profile.is_active is False:
        return []
    return sorted(ROLE_PRESETS.get(profile.role, []))


def create_profile(email: str, name: Optional[str] = None, password: Optional[str] = None,
                   uid: Optional[str] = None, provider: str = 'password', role: str = Profile.ROLE_CUSTOMER) -> Profile:
    """Insert a new profile; a taken email or uid is a 409."""
    session = get_db()
    email = email.strip().lower()
    profile = Profile(
        uid=uid or new_uid(),
        name=(name or '').strip() or email.split('@')[0],
        email=email,
        auth_provider=provider,
        role=role,
        is_active=True,
        first_queue_completed=False,
        last_login=utcnow(),
    )
    if password:
        profile.set_password(password)
    session.add(profile)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, description='An account with this email already exists')
    current_app.logger.info('Profile %s created (%s)', profile.uid, provider)
    return profile


def touch_last_login(profile: Profile):
    profile.last_login = utcnow()
    get_db().commit()


def issue_token(profile: Profile) -> str:
    claims = {
        'email': profile.email,
        'role': profile.role,
        'perms': permissions_for(profile),
    }
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    return create_access_token(identity=str(profile.uid), additional_claims=claims)


def session_payload(profile: Profile, token: Optional[str] = None) -> Dict[str, Any]:
    body = {
        'uid': profile.uid,
        'name': profile.name,
        'email': profile.email,
        'role': profile.role,
        'is_active': profile.is_active,
        'auth_provider': profile.auth_provider,
        'first_queue_completed': profile.first_queue_completed,
        'perms': permissions_for(profile),
    }
    if token is not None:
        body['access_token'] = token
    return body


def is_token_revoked(jti: Optional[str]) -> bool:
    if not jti:
        return False
    return get_db().get(RevokedToken, jti) is not None


def revoke_current_token(reason: str = 'logout'):
    """Blocklist the token of the current request (idempotent)."""
    claims = get_jwt()
    jti = claims.get('jti')
    if not jti:
        return
    session = get_db()
    if session.get(RevokedToken, jti) is None:
        session.add(RevokedToken(jti=jti, uid=claims.get('sub'), reason=reason))
        session.commit()


def verify_federated_token(id_token: str) -> Dict[str, Any]:
    """Validate a third-party ID token with the configured key material."""
    cfg = current_app.config
    key = cfg.get('FEDERATED_JWT_KEY')
    if not key:
        abort(503, description='Federated sign-in is not configured')
    algorithms = [a.strip() for a in str(cfg.get('FEDERATED_JWT_ALGORITHMS') or 'HS256').split(',') if a.strip()]
    options = {'require': ['sub', 'exp']}
    kwargs: Dict[str, Any] = {'algorithms': algorithms, 'options': options}
    if cfg.get('FEDERATED_AUDIENCE'):
        kwargs['audience'] = cfg['FEDERATED_AUDIENCE']
    else:
        options['verify_aud'] = False
    if cfg.get('FEDERATED_ISSUER'):
        kwargs['issuer'] = cfg['FEDERATED_ISSUER']
    try:
        claims = pyjwt.decode(id_token, key, **kwargs)
    except pyjwt.PyJWTError as e:
        current_app.logger.warning('Federated token rejected: %s', e)
        abort(401, description='Federated sign-in failed')
    if not claims.get('email'):
        abort(401, description='Federated identity has no email')
    return claims


__all__ = [
    'new_uid', 'find_profile', 'find_profile_by_email', 'permissions_for', 'create_profile',
    'touch_last_login', 'issue_token', 'session_payload', 'is_token_revoked',
    'revoke_current_token', 'verify_federated_token',
]
