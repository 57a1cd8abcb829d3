"""Configuration for the FHIR demo.

Loads settings from environment variables (via a .env file or the system
environment). Every setting has a default so the module can be imported
without any environment at all, which is what the tests rely on.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists (it usually won't outside local development)
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)

# --- FHIR server ---
# Which of the predefined test servers to talk to ("firely" or "hapi").
FHIR_SERVER: str = os.getenv("FHIR_SERVER", "firely")

# Seconds before an HTTP request to the server is abandoned.
FHIR_TIMEOUT: float = float(os.getenv("FHIR_TIMEOUT", "30"))

# --- Demo search ---
# Comma-separated search criteria, e.g. "name=Smith,birthdate=1970-01-01".
# Left empty, the demo skips the search phase.
FHIR_SEARCH_CRITERIA: str = os.getenv("FHIR_SEARCH_CRITERIA", "")
FHIR_MAX_RESULTS: int = int(os.getenv("FHIR_MAX_RESULTS", "20"))

# --- Logging ---
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
