import json
from flask import request, current_app
from models import db
from models.audit_log import AuditLog

def log_event(action: str, identifier=None, metadata=None):
    if not current_app.config.get("AUDIT_LOG_ENABLED", True):
        return

    user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        action=action,
        identifier=identifier,
        ip=request.remote_addr,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata) if metadata else None
    )
    db.session.add(row)
    db.session.commit()
