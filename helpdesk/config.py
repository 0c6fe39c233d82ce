import json
import os


def _env_json(name, default):
    """Read a JSON-encoded env var, falling back to `default`."""
    raw = os.environ.get(name)
    if not raw:
        return default
    return json.loads(raw)


def _env_list(name, default=()):
    """Read a comma-separated env var into a list of stripped values."""
    raw = os.environ.get(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# Department -> admin email entitled to it at signup time.
DEFAULT_DEPARTMENT_ADMINS = {
    "ICT/Portal": "ict@run.edu.ng",
    "Payment/Bursary": "studentaccount@run.edu.ng",
    "Exams/Results": "ict@run.edu.ng",
    "Hostel/Accommodation": "dssscomplaints@run.edu.ng",
    "Library": "library@run.edu.ng",
    "Registrar": "registrar@run.edu.ng",
    "Others": "ict@run.edu.ng",
}

DEFAULT_SUPER_ADMIN_EMAILS = ["ict@run.edu.ng"]

# Department -> routing address for new-ticket notifications.
DEFAULT_DEPARTMENT_NOTIFY_EMAILS = {
    "ICT/Portal": "support@run.edu.ng",
    "Payment/Bursary": "studentaccount@run.edu.ng",
    "Exams/Results": "support@run.edu.ng",
    "Hostel/Accommodation": "dssscomplaints@run.edu.ng",
    "Library": "library@run.edu.ng",
    "Registrar": "registrar@run.edu.ng",
    "Others": "support@run.edu.ng",
}


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")
    # Public SPA that renders the track / reset-password pages
    FRONTEND_BASE_URL = os.environ.get("FRONTEND_BASE_URL", "http://localhost:5173")
    CORS_ALLOWED_ORIGINS = _env_list("CORS_ALLOWED_ORIGINS")

    # --- Email (SMTP) ---
    MAIL_SMTP_HOST = os.environ.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    MAIL_SMTP_PORT = int(os.environ.get("MAIL_SMTP_PORT", 587))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "RUN Support Portal")
    MAIL_FROM_ADDRESS = os.environ.get("MAIL_FROM_ADDRESS")  # defaults to MAIL_USERNAME
    MAIL_USE_TLS = os.environ.get("MAIL_USE_TLS", "true").lower() != "false"
    MAIL_SUPPRESS_SEND = os.environ.get("MAIL_SUPPRESS_SEND", "").lower() == "true"

    # --- Supabase storage (ticket attachments) ---
    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY")
    SUPABASE_STORAGE_BUCKET = os.environ.get("SUPABASE_STORAGE_BUCKET", "ticket-attachments")

    # --- Tickets ---
    TICKET_ID_PREFIX = os.environ.get("TICKET_ID_PREFIX", "UNIU")
    MATRIC_NUMBER_PATTERN = os.environ.get(
        "MATRIC_NUMBER_PATTERN", r"^RUN/[A-Z]+/\d{2}/\d{4,5}$"
    )

    # --- Auth ---
    SESSION_LIFETIME_HOURS = int(os.environ.get("SESSION_LIFETIME_HOURS", 24))
    PASSWORD_RESET_TTL_MINUTES = int(os.environ.get("PASSWORD_RESET_TTL_MINUTES", 60))

    # --- Admin allowlists (read-only at runtime, see services/departments.py) ---
    SUPER_ADMIN_EMAILS = _env_list("SUPER_ADMIN_EMAILS", DEFAULT_SUPER_ADMIN_EMAILS)
    DEPARTMENT_ADMINS = _env_json("DEPARTMENT_ADMINS", DEFAULT_DEPARTMENT_ADMINS)
    DEPARTMENT_NOTIFY_EMAILS = _env_json(
        "DEPARTMENT_NOTIFY_EMAILS", DEFAULT_DEPARTMENT_NOTIFY_EMAILS
    )

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Cookies (Flask-Login never sets one, but keep them locked down) ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    JSON_SORT_KEYS = False
    MAX_CONTENT_LENGTH = 11 * 1024 * 1024  # attachments are capped at 10 MB

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "APP_BASE_URL",
            "FRONTEND_BASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = Config.SQLALCHEMY_DATABASE_URI or "sqlite:///helpdesk-dev.db"
    SESSION_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing: in-memory SQLite, fixed allowlists, no rate limits or mail."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    APP_BASE_URL = "http://localhost:5000"
    FRONTEND_BASE_URL = "http://localhost:5173"
    CORS_ALLOWED_ORIGINS = ["http://localhost:5173"]
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    MAIL_SUPPRESS_SEND = True
    SESSION_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    TICKET_ID_PREFIX = "UNIU"
    MATRIC_NUMBER_PATTERN = r"^RUN/[A-Z]+/\d{2}/\d{4,5}$"
    SESSION_LIFETIME_HOURS = 24
    PASSWORD_RESET_TTL_MINUTES = 60
    SUPER_ADMIN_EMAILS = ["chief@univ.edu"]
    DEPARTMENT_ADMINS = {
        "ICT/Portal": "ict@univ.edu",
        "Payment/Bursary": "bursary@univ.edu",
        "Exams/Results": "ict@univ.edu",
        "Hostel/Accommodation": "hostel@univ.edu",
        "Library": "library@univ.edu",
        "Registrar": "registrar@univ.edu",
        "Others": "ict@univ.edu",
    }
    DEPARTMENT_NOTIFY_EMAILS = {
        "ICT/Portal": "ict-desk@univ.edu",
        "Library": "library-desk@univ.edu",
        "Others": "helpdesk@univ.edu",
    }

    @staticmethod
    def validate():
        """Nothing to check; every value is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
