from flask import Blueprint, request, abort, current_app
from flask_jwt_extended import jwt_required, get_jwt
from queue_manager.models.authz import Profile
from queue_manager.services.auth import (
    create_profile, find_profile, find_profile_by_email, issue_token, revoke_current_token,
    session_payload, touch_last_login, verify_federated_token,
)
from queue_manager.services.policy import current_uid
from queue_manager.utils.validation import require_text

auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 6


def _credentials():
    data = request.get_json(silent=True) or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password or not isinstance(email, str) or not isinstance(password, str):
        abort(400, description='email & password required')
    return data, email.strip().lower(), password


def _password_login(require_admin: bool = False):
    _, email, password = _credentials()
    profile = find_profile_by_email(email)
    if not profile or not profile.verify_password(password):
        abort(401, description='invalid credentials')
    if profile.is_active is False:
        abort(403, description='Account is disabled')
    if require_admin and not profile.is_admin:
        current_app.logger.warning('Admin login refused for non-admin %s', profile.uid)
        abort(403, description='Admin access required')
    touch_last_login(profile)
    return session_payload(profile, issue_token(profile))


@auth_bp.post('/signup')
def signup():
    data, email, password = _credentials()
    if '@' not in email:
        abort(400, description='email invalid')
    if len(password) < MIN_PASSWORD_LENGTH:
        abort(400, description=f'password must be at least {MIN_PASSWORD_LENGTH} characters')
    name = data.get('name') if isinstance(data.get('name'), str) else None
    profile = create_profile(email, name=name, password=password)
    return session_payload(profile, issue_token(profile)), 201


@auth_bp.post('/login')
def login():
    return _password_login()


@auth_bp.post('/admin/login')
def admin_login():
    return _password_login(require_admin=True)


@auth_bp.post('/federated')
def federated_login():
    data = request.get_json(silent=True) or {}
    id_token = require_text(data, 'id_token')
    claims = verify_federated_token(id_token)
    uid = str(claims['sub'])
    profile = find_profile(uid)
    if profile is None:
        profile = create_profile(
            claims['email'], name=claims.get('name'), uid=uid,
            provider=str(claims.get('provider') or 'federated'),
        )
    if profile.is_active is False:
        abort(403, description='Account is disabled')
    touch_last_login(profile)
    return session_payload(profile, issue_token(profile))


@auth_bp.get('/session')
@jwt_required()
def session_info():
    uid = current_uid()
    profile = find_profile(uid)
    if profile is None:
        # Valid token for an identity whose profile is missing: create it now
        email = get_jwt().get('email')
        if not email:
            abort(404, description='Profile not found')
        profile = create_profile(email, uid=uid, provider='session', role=Profile.ROLE_CUSTOMER)
    return session_payload(profile)


@auth_bp.post('/logout')
@jwt_required()
def logout():
    revoke_current_token(reason='logout')
    return {'status': 'signed-out'}
