from .db import db
from .audit_log import AuditLog
from .login_rate_limit import LoginRateLimit
