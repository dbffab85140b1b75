import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")

# Redis (arq job queue for notifications and reminders)
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"

# Frontend origins allowed by CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000,http://localhost:8081",
).split(",")

# Waitlist back-fill: how long a client has to accept a freed slot
WAITLIST_OFFER_MINUTES = int(os.getenv("WAITLIST_OFFER_MINUTES", "30"))
# Default lifetime of a waitlist entry when the client does not give one
WAITLIST_DEFAULT_EXPIRY_DAYS = int(os.getenv("WAITLIST_DEFAULT_EXPIRY_DAYS", "30"))
# How often the worker sweeps lapsed waitlist offers
WAITLIST_EXPIRY_SWEEP_MINUTES = int(os.getenv("WAITLIST_EXPIRY_SWEEP_MINUTES", "5"))

# Review request is sent this many hours after the appointment ends
REVIEW_REQUEST_DELAY_HOURS = int(os.getenv("REVIEW_REQUEST_DELAY_HOURS", "2"))
# Reminder offsets before the appointment start, e.g. "24,2,1"
REMINDER_OFFSETS_HOURS = [
    int(h) for h in os.getenv("REMINDER_OFFSETS_HOURS", "24,2,1").split(",") if h.strip()
]

# Notification payloads use this date format (DD/MM/YYYY)
DATE_DISPLAY_FORMAT = os.getenv("DATE_DISPLAY_FORMAT", "%d/%m/%Y")
