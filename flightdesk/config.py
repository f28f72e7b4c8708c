import os
from dotenv import load_dotenv

load_dotenv()


def _parse_checkpoints(raw: str):
    """Parse "0.5:30,1.2:60" into [(0.5, 30), (1.2, 60)]."""
    checkpoints = []
    for item in raw.split(","):
        delay, progress = item.strip().split(":")
        checkpoints.append((float(delay), int(progress)))
    return checkpoints


class Settings:
    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./flightdesk.db")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Booking defaults
    DEFAULT_CABIN_CLASS = os.getenv("DEFAULT_CABIN_CLASS", "economy")

    # Payment simulation (seconds since activation -> progress %)
    PAYMENT_CHECKPOINTS = _parse_checkpoints(
        os.getenv("PAYMENT_CHECKPOINTS", "0.5:30,1.2:60,1.8:90,2.5:100")
    )
    PAYMENT_SUCCESS_DELAY = float(os.getenv("PAYMENT_SUCCESS_DELAY", "1.5"))

    # Idle booking sessions are dropped after this many seconds
    SESSION_TTL = float(os.getenv("SESSION_TTL", "1800"))

settings = Settings()
