import os, sys, pytest
# Ensure the backend directory is on path so 'queue_manager' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from queue_manager import create_app, get_db
from queue_manager.models.authz import Base
from queue_manager.services.notifications import NotificationResult
# Import all model modules to ensure tables are registered before create_all
import queue_manager.models.location  # noqa: F401
import queue_manager.models.queue_ticket  # noqa: F401
import queue_manager.models.audit  # noqa: F401


class RecordingSender:
    """Notification sender double: remembers every send, optionally fails."""
    provider = 'Recording'

    def __init__(self):
        self.sent = []
        self.fail_with = None

    def send(self, recipient, template, params):
        self.sent.append({'recipient': recipient, 'template': template, 'params': dict(params)})
        if self.fail_with:
            return NotificationResult(False, provider=self.provider, error=self.fail_with)
        return NotificationResult(True, provider=self.provider)

    def for_ticket(self, ticket_id, template=None):
        return [m for m in self.sent
                if m['params'].get('ticket_id') == ticket_id and (template is None or m['template'] == template)]


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    # Notifications run inline so tests can observe their outcome deterministically
    app = create_app({
        'JWT_SECRET_KEY': 'test-signing-key-0123456789abcdef0123',
        'NOTIFY_ASYNC': False,
        'STATS_KEEPALIVE_SECONDS': 0.05,
    })
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def sender(app_instance):
    recorder = RecordingSender()
    previous = app_instance.extensions['notification_sender']
    app_instance.extensions['notification_sender'] = recorder
    yield recorder
    app_instance.extensions['notification_sender'] = previous
