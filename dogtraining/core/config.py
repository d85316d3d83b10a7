import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dogtraining.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "1440"))

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# When set, registering with role "owner" requires this code.
OWNER_SIGNUP_CODE = os.getenv("OWNER_SIGNUP_CODE")

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

ENROLLMENT_MAX_RETRIES = int(os.getenv("ENROLLMENT_MAX_RETRIES", "3"))

OWNER_EMAIL = os.getenv("OWNER_EMAIL", "owner@poodletraining.com")
OWNER_PASSWORD = os.getenv("OWNER_PASSWORD", "change-me-owner")

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if ENROLLMENT_MAX_RETRIES < 1:
        raise RuntimeError("ENROLLMENT_MAX_RETRIES must be at least 1.")
