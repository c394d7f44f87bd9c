from datetime import datetime
from models.db import db

class LoginRateLimit(db.Model):
    __tablename__ = "login_rate_limits"

    id = db.Column(db.Integer, primary_key=True)

    # Usually the client IP derived from proxy headers
    identifier = db.Column(db.String(255), unique=True, nullable=False, index=True)

    count = db.Column(db.Integer, default=1, nullable=False)
    first_attempt_at = db.Column(db.DateTime, nullable=False)  # window start
    last_attempt_at = db.Column(db.DateTime, nullable=False)
    blocked_until = db.Column(db.DateTime, nullable=True)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
