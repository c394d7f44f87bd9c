import click
from flask import Flask
from config import Config

from models import db
from flask_migrate import Migrate
from routes import health_bp
from security.attempt_store import build_attempt_store, to_datetime
from security.bruteforce import get_login_guard
from security.login_guard import LoginAttemptGuard, RateLimitConfig


def create_app(config_object=Config, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Login rate limiter
    app.extensions["login_guard"] = LoginAttemptGuard(
        build_attempt_store(app.config),
        RateLimitConfig.from_mapping(app.config),
        clock=clock,
    )

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def _fmt(ms):
    value = to_datetime(ms)
    return value.isoformat() + "Z" if value else "-"


def register_cli(app):
    @app.cli.group("rate-limit")
    def rate_limit():
        """Inspect or reset login rate limits."""

    @rate_limit.command("show")
    @click.argument("identifier")
    def show(identifier):
        """Print the stored attempt record for IDENTIFIER."""
        record = get_login_guard().store.find(identifier)
        if not record:
            print(f"No record for {identifier}")
            return

        print(f"identifier:       {record.identifier}")
        print(f"count:            {record.count}")
        print(f"first_attempt_at: {_fmt(record.first_attempt_at)}")
        print(f"last_attempt_at:  {_fmt(record.last_attempt_at)}")
        print(f"blocked_until:    {_fmt(record.blocked_until)}")

    @rate_limit.command("check")
    @click.argument("identifier")
    def check(identifier):
        """Print the current decision for IDENTIFIER without changing it."""
        decision = get_login_guard().check(identifier)
        state = "blocked" if decision.blocked else ("allowed" if decision.success else "denied")
        print(f"{identifier}: {state}, remaining={decision.remaining}, reset_in={decision.reset_in}s")
        if decision.message:
            print(decision.message)

    @rate_limit.command("clear")
    @click.argument("identifier")
    def clear(identifier):
        """Remove the attempt record for IDENTIFIER (manual unblock)."""
        get_login_guard().clear(identifier)
        print(f"Cleared login rate limit for {identifier}")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        db.create_all()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
