"""Flask application factory."""
import os

from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError

from ebd.database import init_db, get_session


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection; JSON API, webhook and tracking blueprints are exempted below
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Token CSRF inválido ou ausente'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # SMTP transport for transactional email
    from ebd.services.email_service import init_mail
    init_mail(app)

    # Redis cache
    from ebd.services.cache_service import init_cache
    init_cache(app)

    # Prometheus instrumentation
    from ebd.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    init_db(app)

    from ebd.middleware import load_tenant

    @app.before_request
    def before_request_handler():
        """Load the tenant context for each request."""
        load_tenant()

    # Error Handlers
    from ebd.exceptions import EbdError

    @app.errorhandler(EbdError)
    def handle_ebd_error(error):
        """Handle application exceptions as JSON."""
        if error.status_code >= 500:
            app.logger.error(f"EbdError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"EbdError [{error.status_code}]: {error.message}")
        get_session().rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not found', 'path': request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception: {error}")
        get_session().rollback()
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from ebd.blueprints.main import main_bp
    from ebd.blueprints.pricing import pricing_bp
    from ebd.blueprints.commissions import commissions_bp
    from ebd.blueprints.customers import customers_bp
    from ebd.blueprints.catalog import catalog_bp
    from ebd.blueprints.orders import orders_bp
    from ebd.blueprints.sync import sync_bp
    from ebd.blueprints.webhooks import webhooks_bp
    from ebd.blueprints.tracking import tracking_bp
    from ebd.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(commissions_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(tracking_bp)
    app.register_blueprint(metrics_bp)

    # Header-authenticated endpoints carry no CSRF token
    for blueprint in (pricing_bp, commissions_bp, customers_bp, catalog_bp, orders_bp,
                      sync_bp, webhooks_bp, tracking_bp):
        csrf.exempt(blueprint)

    from ebd.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
