import requests
from queue_manager.services import notifications
from queue_manager.services.notifications import (
    TEMPLATE_QUEUE_JOINED, TEMPLATE_SERVICE_COMPLETED, EmailJSSender, SimulatedSender, build_sender,
)
from tests.test_utils_seed import fetch_ticket
from tests.test_lifecycle_helpers import assert_transition, join_queue, seed_venue

TEMPLATES = {TEMPLATE_QUEUE_JOINED: 'tpl_joined', TEMPLATE_SERVICE_COMPLETED: 'tpl_done'}


class _FakeResponse:
    def __init__(self, status_code, text='OK'):
        self.status_code = status_code
        self.text = text


def _sender(private_key=None):
    return EmailJSSender('https://mail.example.test/send', 'svc_1', 'pub_1', TEMPLATES, private_key=private_key)


def test_emailjs_posts_payload(monkeypatch):
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append({'url': url, 'json': json, 'timeout': timeout})
        return _FakeResponse(200)

    monkeypatch.setattr(requests, 'post', fake_post)
    result = _sender(private_key='priv_1').send('c@example.com', TEMPLATE_QUEUE_JOINED, {'ticket_id': 'T1'})
    assert result.success is True
    assert result.simulated is False
    payload = calls[0]['json']
    assert calls[0]['url'] == 'https://mail.example.test/send'
    assert calls[0]['timeout'] == notifications.REQUEST_TIMEOUT
    assert payload['service_id'] == 'svc_1'
    assert payload['template_id'] == 'tpl_joined'
    assert payload['user_id'] == 'pub_1'
    assert payload['accessToken'] == 'priv_1'
    assert payload['template_params'] == {'ticket_id': 'T1', 'to_email': 'c@example.com'}


def test_emailjs_http_error_and_transport_failure(monkeypatch):
    monkeypatch.setattr(requests, 'post', lambda url, json=None, timeout=None: _FakeResponse(400, 'bad template'))
    result = _sender().send('c@example.com', TEMPLATE_SERVICE_COMPLETED, {})
    assert result.success is False
    assert result.error.startswith('HTTP 400')

    def boom(url, json=None, timeout=None):
        raise requests.ConnectionError('network down')

    monkeypatch.setattr(requests, 'post', boom)
    result = _sender().send('c@example.com', TEMPLATE_SERVICE_COMPLETED, {})
    assert result.success is False
    assert 'network down' in result.error


def test_emailjs_without_template_id():
    sender = EmailJSSender('https://mail.example.test/send', 'svc_1', 'pub_1', {TEMPLATE_QUEUE_JOINED: None})
    result = sender.send('c@example.com', TEMPLATE_QUEUE_JOINED, {})
    assert result.success is False
    assert 'No template configured' in result.error


def test_build_sender_picks_provider():
    configured = build_sender({
        'EMAILJS_API_URL': 'https://mail.example.test/send', 'EMAILJS_SERVICE_ID': 'svc', 'EMAILJS_PUBLIC_KEY': 'pub',
        'EMAILJS_TEMPLATE_QUEUE_JOINED': 'tpl_joined',
    })
    assert isinstance(configured, EmailJSSender)
    assert configured.templates[TEMPLATE_QUEUE_JOINED] == 'tpl_joined'
    assert isinstance(build_sender({'EMAILJS_SERVICE_ID': 'svc'}), SimulatedSender)


def test_simulated_delivery_is_flagged(client, app_instance, monkeypatch):
    monkeypatch.setitem(app_instance.extensions, 'notification_sender', SimulatedSender())
    v = seed_venue(app_instance, customers=1)
    t = join_queue(client, v.customers[0], v.location_id)
    email = client.get(f"/queues/tickets/{t['ticket_id']}", headers=v.customers[0]).get_json()['email']
    assert email['welcome_sent'] is True
    assert email['simulated'] is True
    assert email['welcome_sent_at'] is not None
    assert email['welcome_error'] is None


def test_failed_email_never_blocks_lifecycle(client, app_instance, sender):
    sender.fail_with = 'HTTP 500: provider down'
    v = seed_venue(app_instance, customers=1)
    t = join_queue(client, v.customers[0], v.location_id)
    assert_transition(client, f'/queues/locations/{v.location_id}/call-next', v.admin, 200, 'serving')
    done = assert_transition(client, f'/queues/locations/{v.location_id}/complete-current', v.admin, 200, 'completed')
    assert done['ticket']['email']['thank_you_sent'] is False
    with app_instance.app_context():
        row = fetch_ticket(t['ticket_id'])
        assert row.status == 'completed'
        assert row.welcome_email_sent is False
        assert row.welcome_email_error == 'HTTP 500: provider down'
        assert row.thank_you_email_error == 'HTTP 500: provider down'
        assert row.thank_you_email_sent_at is None


def test_crashing_sender_is_recorded(client, app_instance, monkeypatch):
    class Exploding:
        provider = 'Exploding'

        def send(self, recipient, template, params):
            raise RuntimeError('template render failed')

    monkeypatch.setitem(app_instance.extensions, 'notification_sender', Exploding())
    v = seed_venue(app_instance, customers=1)
    t = join_queue(client, v.customers[0], v.location_id)
    with app_instance.app_context():
        row = fetch_ticket(t['ticket_id'])
        assert row.status == 'waiting'
        assert row.welcome_email_error == 'template render failed'


def test_missing_recipient_is_recorded(client, app_instance, sender):
    v = seed_venue(app_instance, customers=1)
    t = join_queue(client, v.customers[0], v.location_id)
    sent_before = len(sender.sent)
    with app_instance.app_context():
        result = notifications.dispatch(app_instance, t['ticket_id'], TEMPLATE_SERVICE_COMPLETED, None, {})
        assert result.success is False
        assert fetch_ticket(t['ticket_id']).thank_you_email_error == 'No recipient email on ticket or profile'
    assert len(sender.sent) == sent_before


def test_template_params():
    from datetime import datetime, timezone
    from types import SimpleNamespace
    now = datetime(2026, 5, 4, 13, 7, tzinfo=timezone.utc)
    config = {'EMAIL_SENDER_NAME': 'Front Desk', 'APP_NAME': 'QueueManager', 'SUPPORT_EMAIL': 'help@example.com'}
    ticket = SimpleNamespace(customer_name='Ada', is_first_queue=False, service='Pharmacy', location_name='Clinic',
                             ticket_id='T1', position=3, estimated_wait=10, completed_by=None)
    joined = notifications.queue_joined_params(ticket, config, now)
    assert joined['queue_position'] == 3
    assert joined['estimated_wait'] == '10 minutes'
    assert joined['join_time'] == '2026-05-04 13:07 UTC'
    assert joined['current_year'] == 2026
    assert joined['from_name'] == 'Front Desk'
    done = notifications.service_completed_params(ticket, 12, config, now)
    assert done['total_wait_time'] == '12 minutes'
    assert done['served_by'] == 'Staff'
    assert done['support_email'] == 'help@example.com'
