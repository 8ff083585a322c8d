from queue_manager.services.notifications import TEMPLATE_QUEUE_JOINED
from tests.test_utils_seed import set_ticket_fields, unique
from tests.test_lifecycle_helpers import assert_transition, error_detail, join_queue, seed_venue


def test_position_and_estimated_wait_count_waiting_and_in_progress(client, app_instance):
    v = seed_venue(app_instance, customers=4)
    loc = v.location_id
    first = join_queue(client, v.customers[0], loc)
    second = join_queue(client, v.customers[1], loc)
    assert (first['position'], first['estimated_wait']) == (1, 0)
    assert (second['position'], second['estimated_wait']) == (2, 5)
    # Legacy in-progress tickets still count as ahead in the queue
    with app_instance.app_context():
        set_ticket_fields(second['ticket_id'], status='in-progress')
    third = join_queue(client, v.customers[2], loc)
    assert (third['position'], third['estimated_wait']) == (3, 10)
    # A serving ticket is no longer ahead of anyone
    assert_transition(client, f"/queues/tickets/{first['ticket_id']}/serve", v.admin, 200, 'serving')
    fourth = join_queue(client, v.customers[3], loc)
    assert (fourth['position'], fourth['estimated_wait']) == (3, 10)


def test_created_ticket_reads_back_unchanged(client, app_instance):
    v = seed_venue(app_instance, customers=1, name='Harbour Clinic')
    created = join_queue(client, v.customers[0], v.location_id, service='Pharmacy')
    assert created['ticket_id'].startswith('T')
    resp = client.get(f"/queues/tickets/{created['ticket_id']}", headers=v.customers[0])
    assert resp.status_code == 200
    got = resp.get_json()
    assert got['status'] == 'waiting'
    assert got['position'] == created['position']
    assert got['service'] == 'Pharmacy'
    assert got['location_id'] == v.location_id
    assert got['location_name'] == 'Harbour Clinic'
    assert got['customer_email'] == v.customer_emails[0]
    assert got['user_id'] == v.customer_uids[0]


def test_first_queue_flag_set_once(client, app_instance):
    v = seed_venue(app_instance, customers=1)
    headers = v.customers[0]
    first = join_queue(client, headers, v.location_id)
    assert first['is_first_queue'] is True
    session = client.get('/auth/session', headers=headers).get_json()
    assert session['first_queue_completed'] is True
    second = join_queue(client, headers, v.location_id, service='Pharmacy')
    assert second['is_first_queue'] is False


def test_join_sends_welcome_email(client, app_instance, sender):
    v = seed_venue(app_instance, customers=1)
    t = join_queue(client, v.customers[0], v.location_id)
    sent = sender.for_ticket(t['ticket_id'], TEMPLATE_QUEUE_JOINED)
    assert len(sent) == 1
    params = sent[0]['params']
    assert params['queue_position'] == 1
    assert params['is_first_queue'] is True
    assert params['estimated_wait'] == '0 minutes'
    resp = client.get(f"/queues/tickets/{t['ticket_id']}", headers=v.customers[0])
    assert resp.get_json()['email']['welcome_sent'] is True


def test_join_validation(client, app_instance):
    v = seed_venue(app_instance, customers=1)
    headers = v.customers[0]
    for payload in ({}, {'location_id': v.location_id}, {'service': 'Consultation'},
                    {'location_id': v.location_id, 'service': '  '}, {'location_id': 7, 'service': 'Consultation'}):
        resp = client.post('/queues/tickets', json=payload, headers=headers)
        assert resp.status_code == 400
        assert error_detail(resp) == 'location_id and service required'
    resp = client.post('/queues/tickets', json={'location_id': v.location_id, 'service': 'Haircut'}, headers=headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'Service not offered at this location'
    mine = client.get('/queues/mine', headers=headers).get_json()['data']
    assert mine == []


def test_join_missing_location_asks_for_refresh(client, app_instance):
    v = seed_venue(app_instance, customers=1)
    resp = client.post('/queues/tickets', json={'location_id': unique('gone'), 'service': 'Consultation'}, headers=v.customers[0])
    assert resp.status_code == 404
    err = resp.get_json()['error']
    assert err['detail'] == 'Location not found'
    assert err['refresh'] is True


def test_duplicate_ticket_id_is_rejected(client, app_instance, monkeypatch):
    v = seed_venue(app_instance, customers=2)
    fixed = unique('T')
    monkeypatch.setattr('queue_manager.services.queue.generate_ticket_id', lambda now=None: fixed)
    first = join_queue(client, v.customers[0], v.location_id)
    assert first['ticket_id'] == fixed
    resp = client.post('/queues/tickets', json={'location_id': v.location_id, 'service': 'Consultation'}, headers=v.customers[1])
    assert resp.status_code == 409
    # The original ticket was not overwritten
    got = client.get(f'/queues/tickets/{fixed}', headers=v.customers[0]).get_json()
    assert got['user_id'] == v.customer_uids[0]


def test_mine_active_and_history(client, app_instance):
    v = seed_venue(app_instance, customers=1)
    headers = v.customers[0]
    kept = join_queue(client, headers, v.location_id)
    left = join_queue(client, headers, v.location_id, service='Pharmacy')
    assert_transition(client, f"/queues/tickets/{left['ticket_id']}/leave", headers, 200, 'cancelled')
    active = client.get('/queues/mine', headers=headers).get_json()
    assert active['scope'] == 'active'
    assert [t['ticket_id'] for t in active['data']] == [kept['ticket_id']]
    history = client.get('/queues/mine?scope=history', headers=headers).get_json()
    assert [t['ticket_id'] for t in history['data']] == [left['ticket_id']]
    resp = client.get('/queues/mine?scope=everything', headers=headers)
    assert resp.status_code == 400


def test_ticket_read_requires_ownership(client, app_instance):
    v = seed_venue(app_instance, customers=2)
    t = join_queue(client, v.customers[0], v.location_id)
    resp = client.get(f"/queues/tickets/{t['ticket_id']}", headers=v.customers[1])
    assert resp.status_code == 403
    # Operators may read any ticket
    resp = client.get(f"/queues/tickets/{t['ticket_id']}", headers=v.admin)
    assert resp.status_code == 200


def test_leave_queue(client, app_instance):
    v = seed_venue(app_instance, customers=2)
    t = join_queue(client, v.customers[0], v.location_id)
    # Only the owner may cancel
    resp = client.post(f"/queues/tickets/{t['ticket_id']}/leave", headers=v.customers[1])
    assert resp.status_code == 403
    body = assert_transition(client, f"/queues/tickets/{t['ticket_id']}/leave", v.customers[0], 200, 'cancelled')
    assert body['ticket']['completed_at'] is not None
    # Cancelled is terminal
    resp = client.post(f"/queues/tickets/{t['ticket_id']}/leave", headers=v.customers[0])
    assert resp.status_code == 400


def test_cannot_leave_while_being_served(client, app_instance):
    v = seed_venue(app_instance, customers=1)
    t = join_queue(client, v.customers[0], v.location_id)
    assert_transition(client, f'/queues/locations/{v.location_id}/call-next', v.admin, 200, 'serving')
    resp = client.post(f"/queues/tickets/{t['ticket_id']}/leave", headers=v.customers[0])
    assert resp.status_code == 400
