from __future__ import annotations
import os
from dotenv import load_dotenv

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "Campus Canteen")
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./canteen.db")
DB_ECHO = os.getenv("DB_ECHO", "0").strip().lower() in {"1", "true", "yes", "on"}

# Comma-separated list of email domains permitted to register
ALLOWED_EMAIL_DOMAINS = [d.strip().lower() for d in os.getenv("ALLOWED_EMAIL_DOMAINS", "").split(",") if d.strip()]

MANAGER_BOOTSTRAP_EMAIL = os.getenv("MANAGER_BOOTSTRAP_EMAIL", "manager@canteen.local").lower()
MANAGER_BOOTSTRAP_PASSWORD = os.getenv("MANAGER_BOOTSTRAP_PASSWORD", "ChangeMe123!")

TAX_RATE = float(os.getenv("TAX_RATE", "0.05"))

# Pickup slots
SLOT_LEAD_MINUTES = int(os.getenv("SLOT_LEAD_MINUTES", "30"))
SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "15"))
CLOSING_HOUR = int(os.getenv("CLOSING_HOUR", "22"))
SLOT_CAPACITY = int(os.getenv("SLOT_CAPACITY", "20"))

OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", "10"))
OTP_RESEND_COOLDOWN_SECONDS = int(os.getenv("OTP_RESEND_COOLDOWN_SECONDS", "60"))
RESET_TOKEN_MAX_AGE_SECONDS = int(os.getenv("RESET_TOKEN_MAX_AGE_SECONDS", str(60 * 60)))

SEED_SAMPLE_MENU = os.getenv("SEED_SAMPLE_MENU", "1").strip().lower() in {"1", "true", "yes", "on"}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()
