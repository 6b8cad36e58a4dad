"""
Central configuration — reads environment variables and provides defaults.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ── Orders volume ────────────────────────────────────────────────────────────
ORDERS_PATH: str = os.getenv("ORDERS_PATH", "/mnt/orders")

# ── Volusion (order details) ─────────────────────────────────────────────────
VOLUSION_API_URL: str = os.getenv("VOLUSION_API_URL", "")
VOLUSION_API_LOGIN: str = os.getenv("VOLUSION_API_LOGIN", "")
VOLUSION_API_PW: str = os.getenv("VOLUSION_API_PW", "")
VOLUSION_TIMEOUT: float = float(os.getenv("VOLUSION_TIMEOUT", "30"))
FETCH_DELAY_SECONDS: float = float(os.getenv("FETCH_DELAY_SECONDS", "0.2"))

# ── Meilisearch ──────────────────────────────────────────────────────────────
MEILISEARCH_URL: str = os.getenv("MEILISEARCH_URL", "http://localhost:7700")
MEILISEARCH_MASTER_KEY: str = os.getenv("MEILISEARCH_MASTER_KEY", "")
MEILISEARCH_INDEX: str = os.getenv("MEILISEARCH_INDEX", "orders")
PUBLISH_BATCH_SIZE: int = int(os.getenv("PUBLISH_BATCH_SIZE", "50"))

# ── Scheduling ───────────────────────────────────────────────────────────────
# Only the hour field of the cron expression is honoured.
CRON_SCHEDULE: str = os.getenv("CRON_SCHEDULE", "0 4 * * *")
POLL_INTERVAL_SECONDS: float = float(os.getenv("POLL_INTERVAL_SECONDS", "1.0"))

# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
