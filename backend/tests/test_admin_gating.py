from tests.test_utils_seed import ensure_location, ensure_profile
from tests.test_lifecycle_helpers import error_detail, jwt_headers, login_headers


def test_customer_on_operator_flow_is_signed_out(client, app_instance):
    with app_instance.app_context():
        location_id = ensure_location()
        customer = ensure_profile()
    headers = login_headers(client, customer.email)
    resp = client.post(f'/queues/locations/{location_id}/call-next', headers=headers)
    assert resp.status_code == 403
    assert error_detail(resp) == 'Admin access required; session terminated'
    # The token used for the attempt is dead
    assert client.get('/auth/session', headers=headers).status_code == 401


def test_customer_on_reports_is_signed_out(client, app_instance):
    with app_instance.app_context():
        customer = ensure_profile()
    headers = login_headers(client, customer.email)
    resp = client.get('/reports/analytics', headers=headers)
    assert resp.status_code == 403
    assert client.get('/locations', headers=headers).status_code == 401


def test_role_is_read_from_profile_not_token(client, app_instance):
    with app_instance.app_context():
        location_id = ensure_location()
        customer = ensure_profile()
        # Token claims operator permissions the profile does not hold
        headers = jwt_headers(customer, perms=['QUEUE.MANAGE', 'RPT.READ'])
    resp = client.get(f'/queues/locations/{location_id}/waiting', headers=headers)
    assert resp.status_code == 403


def test_inactive_admin_is_refused(client, app_instance):
    with app_instance.app_context():
        location_id = ensure_location()
        admin = ensure_profile(role='admin', is_active=False)
        headers = jwt_headers(admin)
    resp = client.post('/auth/admin/login', json={'email': admin.email, 'password': 'pw-secret'})
    assert resp.status_code == 403
    resp = client.get(f'/queues/locations/{location_id}/serving', headers=headers)
    assert resp.status_code == 403


def test_missing_token_is_unauthorized(client):
    assert client.get('/queues/stats').status_code == 401
    assert client.post('/queues/tickets', json={}).status_code == 401
    assert client.get('/locations').status_code == 401
