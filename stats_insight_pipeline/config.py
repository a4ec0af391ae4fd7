"""
Environment-driven settings.

Rationale:
- Everything has a sane default so the pipeline runs without a .env file.
- Values are read once at import; the service layer is the only consumer of the limits.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file (if present)
load_dotenv()

LOG_LEVEL = os.getenv("STATS_LOG_LEVEL", "INFO").upper()

# Practical upload-size ceiling (the original upload widget used 50MB)
MAX_UPLOAD_MB = int(os.getenv("STATS_MAX_UPLOAD_MB", "50"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024

# Maximum rows kept per dataset (keeps memory/time bounded).
ROW_LIMIT = int(os.getenv("STATS_ROW_LIMIT", "100000"))

PREVIEW_ROWS = int(os.getenv("STATS_PREVIEW_ROWS", "100"))

URL_TIMEOUT = float(os.getenv("STATS_URL_TIMEOUT", "30.0"))

# Sessions kept in memory; the least recently used one is dropped beyond this.
MAX_SESSIONS = int(os.getenv("STATS_MAX_SESSIONS", "100"))
