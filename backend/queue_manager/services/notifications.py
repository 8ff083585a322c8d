"""Customer email notifications for queue tickets.

Two logical templates exist: "queue joined" (sent when a ticket is created)
and "service completed" (sent when an operator completes a ticket). Delivery
goes through EmailJS when credentials are configured, otherwise a simulated
sender only logs the message.

Design decisions:
- Senders never raise; every outcome comes back as a NotificationResult.
- The outcome is written onto the ticket's email flags and nowhere else; a
  failed email never changes or blocks a ticket's status.
- Dispatch runs on a daemon thread unless NOTIFY_ASYNC is off, in which case
  it runs inline right after the lifecycle commit.
"""
import logging
import threading
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import requests
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

TEMPLATE_QUEUE_JOINED = 'queue_joined'
TEMPLATE_SERVICE_COMPLETED = 'service_completed'
TEMPLATES = (TEMPLATE_QUEUE_JOINED, TEMPLATE_SERVICE_COMPLETED)

REQUEST_TIMEOUT = 10


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    simulated: bool = False
    provider: str = ''
    error: Optional[str] = None


class EmailJSSender:
    provider = 'EmailJS'

    def __init__(self, api_url: str, service_id: str, public_key: str, templates: Mapping[str, Optional[str]],
                 private_key: Optional[str] = None):
        self.api_url = api_url
        self.service_id = service_id
        self.public_key = public_key
        self.private_key = private_key
        self.templates = dict(templates)

    def send(self, recipient: str, template: str, params: Dict[str, Any]) -> NotificationResult:
        template_id = self.templates.get(template)
        if not template_id:
            return NotificationResult(False, provider=self.provider, error=f'No template configured for {template}')
        payload = {
            'service_id': self.service_id,
            'template_id': template_id,
            'user_id': self.public_key,
            'template_params': dict(params, to_email=recipient),
        }
        if self.private_key:
            payload['accessToken'] = self.private_key
        try:
            r = requests.post(self.api_url, json=payload, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            logger.warning('EmailJS request failed for %s: %s', template, e)
            return NotificationResult(False, provider=self.provider, error=str(e))
        if r.status_code >= 400:
            logger.warning('EmailJS rejected %s: HTTP %s', template, r.status_code)
            return NotificationResult(False, provider=self.provider, error=f'HTTP {r.status_code}: {r.text[:200]}')
        return NotificationResult(True, provider=self.provider)


class SimulatedSender:
    provider = 'Simulated'

    def send(self, recipient: str, template: str, params: Dict[str, Any]) -> NotificationResult:
        logger.info('[SIMULATED] %s email to %s for ticket %s', template, recipient, params.get('ticket_id'))
        return NotificationResult(True, simulated=True, provider=self.provider)


def build_sender(config: Mapping[str, Any]):
    if config.get('EMAILJS_SERVICE_ID') and config.get('EMAILJS_PUBLIC_KEY'):
        return EmailJSSender(
            api_url=config['EMAILJS_API_URL'],
            service_id=config['EMAILJS_SERVICE_ID'],
            public_key=config['EMAILJS_PUBLIC_KEY'],
            private_key=config.get('EMAILJS_PRIVATE_KEY'),
            templates={
                TEMPLATE_QUEUE_JOINED: config.get('EMAILJS_TEMPLATE_QUEUE_JOINED'),
                TEMPLATE_SERVICE_COMPLETED: config.get('EMAILJS_TEMPLATE_SERVICE_COMPLETED'),
            },
        )
    logger.info('EmailJS not configured; notification emails will be simulated')
    return SimulatedSender()


def _common_params(config: Mapping[str, Any], now) -> Dict[str, Any]:
    return {
        'from_name': config.get('EMAIL_SENDER_NAME'),
        'app_name': config.get('APP_NAME'),
        'support_email': config.get('SUPPORT_EMAIL'),
        'current_year': now.year,
    }


def queue_joined_params(ticket, config: Mapping[str, Any], now) -> Dict[str, Any]:
    params = _common_params(config, now)
    params.update({
        'to_name': ticket.customer_name,
        'is_first_queue': bool(ticket.is_first_queue),
        'service_name': ticket.service,
        'location_name': ticket.location_name,
        'ticket_id': ticket.ticket_id,
        'queue_position': ticket.position,
        'estimated_wait': f'{ticket.estimated_wait} minutes',
        'join_time': now.strftime('%Y-%m-%d %H:%M UTC'),
    })
    return params


def service_completed_params(ticket, total_wait_minutes: int, config: Mapping[str, Any], now) -> Dict[str, Any]:
    params = _common_params(config, now)
    params.update({
        'to_name': ticket.customer_name,
        'service_name': ticket.service,
        'location_name': ticket.location_name,
        'ticket_id': ticket.ticket_id,
        'total_wait_time': f'{total_wait_minutes} minutes',
        'served_by': ticket.completed_by or 'Staff',
        'completion_time': now.strftime('%Y-%m-%d %H:%M UTC'),
    })
    return params


def _record_outcome(ticket_id: str, template: str, result: NotificationResult):
    from queue_manager import get_db
    from queue_manager.models.queue_ticket import QueueTicket
    from queue_manager.utils.timeutil import utcnow
    if template == TEMPLATE_QUEUE_JOINED:
        values = {
            'welcome_email_sent': result.success,
            'welcome_email_error': result.error,
            'email_simulated': result.simulated,
        }
        if result.success:
            values['welcome_email_sent_at'] = utcnow()
    else:
        values = {
            'thank_you_email_sent': result.success,
            'thank_you_email_error': result.error,
        }
        if result.success:
            values['thank_you_email_sent_at'] = utcnow()
    session = get_db()
    try:
        session.execute(
            update(QueueTicket).where(QueueTicket.ticket_id == ticket_id).values(**values)
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Could not record %s outcome on ticket %s', template, ticket_id)


def _deliver(app, ticket_id: str, template: str, recipient: Optional[str], params: Dict[str, Any], background: bool):
    # Inline delivery reuses the caller's context and session; a background
    # context tears down its own scoped session when it pops
    with (app.app_context() if background else nullcontext()):
        if not recipient:
            result = NotificationResult(False, error='No recipient email on ticket or profile')
        else:
            sender = app.extensions['notification_sender']
            try:
                result = sender.send(recipient, template, params)
            except Exception as e:  # third-party senders may raise; the ticket only records it
                logger.exception('Notification sender crashed for ticket %s', ticket_id)
                result = NotificationResult(False, provider=getattr(sender, 'provider', ''), error=str(e))
        if not result.success:
            logger.warning('%s email for ticket %s failed: %s', template, ticket_id, result.error)
        _record_outcome(ticket_id, template, result)
        return result


def dispatch(app, ticket_id: str, template: str, recipient: Optional[str], params: Dict[str, Any]):
    """Fire-and-forget send. Returns the result when run inline, else None."""
    if app.config.get('NOTIFY_ASYNC', True):
        thread = threading.Thread(
            target=_deliver, args=(app, ticket_id, template, recipient, params, True), daemon=True,
        )
        thread.start()
        return None
    return _deliver(app, ticket_id, template, recipient, params, False)


__all__ = [
    'TEMPLATE_QUEUE_JOINED', 'TEMPLATE_SERVICE_COMPLETED', 'NotificationResult', 'EmailJSSender',
    'SimulatedSender', 'build_sender', 'queue_joined_params', 'service_completed_params', 'dispatch',
]
