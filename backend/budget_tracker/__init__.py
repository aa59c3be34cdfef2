from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()

API_PREFIX = '/api/v1'


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['UPLOAD_FOLDER'] = os.getenv('UPLOAD_FOLDER', os.path.join(app.instance_path, 'uploads'))
    app.config['MAX_CONTENT_LENGTH'] = int(os.getenv('MAX_CONTENT_LENGTH', 10 * 1024 * 1024))
    app.config['APPROVAL_PERMSEC_THRESHOLD'] = int(os.getenv('APPROVAL_PERMSEC_THRESHOLD', 1_000_000))
    app.config['APPROVAL_COMMISSIONER_THRESHOLD'] = int(os.getenv('APPROVAL_COMMISSIONER_THRESHOLD', 5_000_000))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

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

    jwt.init_app(app)

    from .routes.iam import iam_bp
    from .routes.mdas import mda_bp
    from .routes.budgets import budget_bp
    from .routes.line_items import line_item_bp
    from .routes.expenditures import exp_bp
    from .routes.retirements import ret_bp
    from .routes.approvals import approval_bp
    from .routes.dashboard import dashboard_bp
    from .routes.notifications import notif_bp
    app.register_blueprint(iam_bp, url_prefix=API_PREFIX)
    app.register_blueprint(mda_bp, url_prefix=f'{API_PREFIX}/mdas')
    app.register_blueprint(budget_bp, url_prefix=f'{API_PREFIX}/budgets')
    app.register_blueprint(line_item_bp, url_prefix=f'{API_PREFIX}/line-items')
    app.register_blueprint(exp_bp, url_prefix=f'{API_PREFIX}/expenditures')
    app.register_blueprint(ret_bp, url_prefix=f'{API_PREFIX}/retirements')
    app.register_blueprint(approval_bp, url_prefix=f'{API_PREFIX}/approvals')
    app.register_blueprint(dashboard_bp, url_prefix=f'{API_PREFIX}/dashboard')
    app.register_blueprint(notif_bp, url_prefix=f'{API_PREFIX}/notifications')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler: {message, statusCode} plus the structured error block
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'message': e.description,
                'statusCode': e.code,
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        if SessionLocal is not None:
            SessionLocal.rollback()
        return {
            'message': 'Unexpected error',
            'statusCode': 500,
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()
