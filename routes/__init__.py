from .health import health_bp
