"""
Process settings.

Values are loaded from environment variables (and a local ``.env`` file via
python-dotenv), with defaults when a variable is missing.

Attributes:
    LOG_LEVEL (str): Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    LOG_DIR (Optional[Path]): Directory for rotating log files; console only when unset.
    LOG_FORMAT (str): Log entry format.
    LOG_DATE_FORMAT (str): Date and time format in logs.
    ENCRYPTION_KEY (str): 64 hex characters for AES-256-GCM; random per run when empty.
    OUTPUT_DIR (Path): Default directory for run output and checkpoints.
    ALLOWED_DOMAINS (List[str]): Hosts the scraper may contact.
    MAX_AUDIT_LOG_SIZE (int): Number of audit events kept in memory.
    MAX_SECURITY_INCIDENTS (int): Incident count above which a threshold event is logged.
    MAX_REQUESTS_PER_MINUTE (int): Request rate above which a threshold event is logged.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Logging settings
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = Path(os.environ["LOG_DIR"]) if os.getenv("LOG_DIR") else None
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Data protection
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "")

# Output
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", "output"))

# Request security
ALLOWED_DOMAINS = [
    d.strip()
    for d in os.getenv(
        "ALLOWED_DOMAINS",
        "google.com,edmunds.com,cars.com,kbb.com,caranddriver.com,motortrend.com",
    ).split(",")
    if d.strip()
]

# Audit thresholds
MAX_AUDIT_LOG_SIZE = int(os.getenv("MAX_AUDIT_LOG_SIZE", "10000"))
MAX_SECURITY_INCIDENTS = int(os.getenv("MAX_SECURITY_INCIDENTS", "10"))
MAX_REQUESTS_PER_MINUTE = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "30"))
