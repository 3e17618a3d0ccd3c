"""
Application configuration, read once from the environment at import time.
"""
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET = os.getenv("JWT_SECRET", "change-me-jwt-secret")
JWT_ALGORITHM = "HS256"
TOKEN_EXPIRE_DAYS = 7
AUTH_COOKIE_NAME = "auth-token"

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@seratusstudio.com")

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

PUBLIC_DIR = os.getenv("PUBLIC_DIR", "public")
DOWNLOAD_WINDOW_DAYS = 30
MAX_BACKGROUND_SIZE = 10 * 1024 * 1024

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Seratus Studio <noreply@seratusstudio.com>")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))
