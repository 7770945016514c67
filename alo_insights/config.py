"""Environment-driven configuration."""

import os
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


def parse_thresholds(value: str) -> Dict[str, float]:
    """Parse "name:value,name:value" into a dict of floats."""
    thresholds = {}
    for item in value.split(','):
        if not item.strip():
            continue
        key, number = item.split(':')
        thresholds[key.strip()] = float(number.strip())
    return thresholds


BACKEND_BASE_URL = os.getenv('BACKEND_BASE_URL', 'http://localhost:8080/api')
BACKEND_API_KEY = os.getenv('BACKEND_API_KEY', '')
BACKEND_TIMEOUT = float(os.getenv('BACKEND_TIMEOUT', '30'))
FETCH_LIMIT = int(os.getenv('FETCH_LIMIT', '500'))

DEFAULT_WINDOW_DAYS = int(os.getenv('DEFAULT_WINDOW_DAYS', '30'))

IMPROVEMENT_THRESHOLDS = parse_thresholds(
    os.getenv('IMPROVEMENT_THRESHOLDS', 'conversion:50,success:60,response:24')
)

ALLOW_ORIGINS = os.getenv('ALLOW_ORIGINS', '*').split(',')
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

COUNSELOR_SIGNATURE_NAME = os.getenv('COUNSELOR_SIGNATURE_NAME', 'Your ALO Counselor')
COUNSELOR_SIGNATURE_EMAIL = os.getenv('COUNSELOR_SIGNATURE_EMAIL', 'counselor@example.com')
