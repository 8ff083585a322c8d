from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['QUEUE_SERVICE_MINUTES'] = int(os.getenv('QUEUE_SERVICE_MINUTES', '5'))
    app.config['ANALYTICS_WINDOW_DAYS'] = int(os.getenv('ANALYTICS_WINDOW_DAYS', '7'))
    app.config['NOTIFY_ASYNC'] = _env_bool('NOTIFY_ASYNC', True)
    # Email delivery (EmailJS); without service id + public key emails are simulated
    app.config['EMAILJS_API_URL'] = os.getenv('EMAILJS_API_URL', 'https://api.emailjs.com/api/v1.0/email/send')
    app.config['EMAILJS_SERVICE_ID'] = os.getenv('EMAILJS_SERVICE_ID')
    app.config['EMAILJS_PUBLIC_KEY'] = os.getenv('EMAILJS_PUBLIC_KEY')
    app.config['EMAILJS_PRIVATE_KEY'] = os.getenv('EMAILJS_PRIVATE_KEY')
    app.config['EMAILJS_TEMPLATE_QUEUE_JOINED'] = os.getenv('EMAILJS_TEMPLATE_QUEUE_JOINED')
    app.config['EMAILJS_TEMPLATE_SERVICE_COMPLETED'] = os.getenv('EMAILJS_TEMPLATE_SERVICE_COMPLETED')
    app.config['EMAIL_SENDER_NAME'] = os.getenv('EMAIL_SENDER_NAME', 'QueueManager Team')
    app.config['APP_NAME'] = os.getenv('APP_NAME', 'QueueManager')
    app.config['SUPPORT_EMAIL'] = os.getenv('SUPPORT_EMAIL', 'support@queuemanager.com')
    # Federated sign-in (third-party ID tokens)
    app.config['FEDERATED_JWT_KEY'] = os.getenv('FEDERATED_JWT_KEY')
    app.config['FEDERATED_JWT_ALGORITHMS'] = os.getenv('FEDERATED_JWT_ALGORITHMS', 'HS256')
    app.config['FEDERATED_AUDIENCE'] = os.getenv('FEDERATED_AUDIENCE')
    app.config['FEDERATED_ISSUER'] = os.getenv('FEDERATED_ISSUER')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    @app.teardown_appcontext
    def remove_session(exc=None):  # type: ignore
        SessionLocal.remove()

    jwt.init_app(app)

    from .services.auth import is_token_revoked

    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):  # type: ignore
        return is_token_revoked(jwt_payload.get('jti'))

    from .services.feed import TicketFeed
    from .services.notifications import build_sender
    app.extensions['ticket_feed'] = TicketFeed()
    app.extensions['notification_sender'] = build_sender(app.config)

    from .routes.auth import auth_bp  # identity & sessions
    from .routes.locations import loc_bp  # venues (read-only)
    from .routes.queues import queue_bp  # ticket lifecycle
    from .routes.reports import rpt_bp  # analytics
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(loc_bp, url_prefix='/locations')
    app.register_blueprint(queue_bp, url_prefix='/queues')
    app.register_blueprint(rpt_bp, url_prefix='/reports')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            if getattr(e, 'refresh', False):
                payload['error']['refresh'] = True
            return payload, e.code
        if isinstance(e, SQLAlchemyError):
            # Store unavailable or write failed; the client re-triggers the action
            app.logger.exception('Store operation failed')
            try:
                get_db().rollback()
            except SQLAlchemyError:
                app.logger.warning('Rollback after store failure did not complete')
            return {
                'error': {
                    'status': 503,
                    'title': 'Service Unavailable',
                    'detail': 'Service temporarily unavailable, please retry'
                }
            }, 503
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    from .openapi import build_openapi_spec

    @app.route('/openapi.json')
    def openapi_spec():
        return build_openapi_spec()

    @app.route('/docs')
    def docs_index():
        return (
            "<!DOCTYPE html><html><head><title>API Docs</title>"
            "<link rel=\"stylesheet\" href=\"https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.css\" />"
            "</head><body><redoc spec-url='/openapi.json'></redoc>"
            "<script src='https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js'></script>"
            "</body></html>"
        )

    return app


def get_db():
    return SessionLocal()
