"""Configuration and timing profiles for the FPL lookup automation"""

import os
from pathlib import Path

# ========================================
# SPEED MODE CONFIGURATION
# ========================================
# Choose one mode (set all others to False):
# - DEV_TEST_SPEED: shorter settle delays for local debugging against the portal
# - SUPER_DEV_SPEED: minimal settle delays - only with a fast connection
# - Production: All False (default, safest for the slow portal)

DEV_TEST_SPEED = False
SUPER_DEV_SPEED = False

# ========================================
# TIMING PROFILES
# ========================================
# All values are in milliseconds (ms)
# Settle delays keep randomization via human_delay()

TIMING_PROFILES = {
    "default": {
        # Per-strategy lookup timeout (resolver)
        "strategy_timeout": 3000,
        # Timeout for a single click/fill/check once an element is resolved
        "action_timeout": 5000,
        # Settle delay after each step action
        "settle_min": 800,
        "settle_max": 1200,
        # Wait after a page-level transition (Next, Continue, login)
        "page_transition_min": 2000,
        "page_transition_max": 3000,
        # Wait for an autocomplete dropdown to open
        "dropdown_open_min": 1500,
        "dropdown_open_max": 2000,
        # Wait for the status page after Confirm
        "status_page_min": 8000,
        "status_page_max": 8500,
        # Navigation timeout for page.goto
        "navigation_timeout": 30000,
    },
    "dev_test": {
        "strategy_timeout": 3000,
        "action_timeout": 5000,
        "settle_min": 400,
        "settle_max": 700,
        "page_transition_min": 1200,
        "page_transition_max": 1800,
        "dropdown_open_min": 1000,
        "dropdown_open_max": 1400,
        "status_page_min": 5000,
        "status_page_max": 5500,
        "navigation_timeout": 30000,
    },
    "super_dev": {
        "strategy_timeout": 3000,  # Resolver floor - never lower
        "action_timeout": 4000,
        "settle_min": 200,
        "settle_max": 300,
        "page_transition_min": 800,
        "page_transition_max": 1000,
        "dropdown_open_min": 600,
        "dropdown_open_max": 800,
        "status_page_min": 3000,
        "status_page_max": 3500,
        "navigation_timeout": 30000,
    },
}

# ========================================
# SAFETY VALIDATIONS
# ========================================
_MIN_STRATEGY_TIMEOUT_MS = 3000
_MAX_STRATEGY_TIMEOUT_MS = 5000
_MIN_STATUS_PAGE_MS = 3000


def get_active_timing():
    """Get the active timing profile based on current speed mode settings"""
    if SUPER_DEV_SPEED:
        return TIMING_PROFILES["super_dev"]
    elif DEV_TEST_SPEED:
        return TIMING_PROFILES["dev_test"]
    else:
        return TIMING_PROFILES["default"]


def validate_timing(timing):
    """Return a list of human-readable violations for a timing profile"""
    violations = []
    strategy_timeout = timing.get("strategy_timeout", 0)
    if not _MIN_STRATEGY_TIMEOUT_MS <= strategy_timeout <= _MAX_STRATEGY_TIMEOUT_MS:
        violations.append(
            f"strategy_timeout={strategy_timeout}ms outside "
            f"{_MIN_STRATEGY_TIMEOUT_MS}-{_MAX_STRATEGY_TIMEOUT_MS}ms"
        )
    if timing.get("status_page_min", 0) < _MIN_STATUS_PAGE_MS:
        violations.append(
            f"status_page_min={timing.get('status_page_min')}ms < {_MIN_STATUS_PAGE_MS}ms minimum"
        )
    for key, value in timing.items():
        if key.endswith("_min"):
            max_key = key[: -len("_min")] + "_max"
            if max_key in timing and timing[max_key] < value:
                violations.append(f"{max_key}={timing[max_key]}ms < {key}={value}ms")
    return violations


# Initialize TIMING with current settings
TIMING = get_active_timing()

_violations = validate_timing(TIMING)
if _violations:
    print("⚠️ TIMING PROFILE VIOLATIONS - Falling back to default profile:")
    for violation in _violations:
        print(f"  - {violation}")
    TIMING = TIMING_PROFILES["default"]
    DEV_TEST_SPEED = False
    SUPER_DEV_SPEED = False

# ========================================
# PORTAL
# ========================================
PORTAL_URL = os.environ.get("FPL_PORTAL_URL", "https://www.fpl.com")

# Tried in order when the homepage does not show a login form
LOGIN_URLS = [
    f"{PORTAL_URL}/login",
    f"{PORTAL_URL}/my-account.html",
    f"{PORTAL_URL}/account/login",
    f"{PORTAL_URL}/customer-portal",
]

# Title fragment of the account link to pick on the account selection page
ACCOUNT_TITLE = os.environ.get("FPL_ACCOUNT_TITLE", "Kalvaitis Holdings")

# Value typed into the "Person Making Request" field
REQUESTOR_NAME = os.environ.get("FPL_REQUESTOR_NAME", "Devin")

PROPERTY_USE_OPTION = "Property Manager needing service between tenants"

# Placeholder written when a status field cannot be read from the page
NOT_FOUND = "Not found"

# Error recorded for a row whose flow finished without any status
NO_STATUS_ERROR = "No status found"

# ========================================
# BROWSER
# ========================================
# HEADLESS=false shows the browser window; anything else runs headless
HEADLESS = os.environ.get("HEADLESS", "true").strip().lower() != "false"

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# ========================================
# BATCH
# ========================================
MAX_BATCH_SIZE = 50
INTER_ROW_DELAY_MS = 2000

# ========================================
# STORAGE & DIAGNOSTICS
# ========================================
DATABASE_PATH = Path(os.environ.get("FPL_DATABASE_PATH", "server-data.sqlite"))
ARTIFACTS_DIR = Path(os.environ.get("FPL_ARTIFACTS_DIR", "artifacts"))
RESULT_LOG_PATH = Path(os.environ.get("FPL_RESULT_LOG", "log.jsonl"))
CAPTURE_SCREENSHOTS = os.environ.get("FPL_CAPTURE_SCREENSHOTS", "true").strip().lower() != "false"

# ========================================
# STARTUP LOGGING
# ========================================
if DEV_TEST_SPEED or SUPER_DEV_SPEED:
    print("\n" + "=" * 60)
    print("⚙️  FAST TIMING PROFILE ENABLED")
    print("=" * 60)
    print("Settle delays are shorter than the production profile")
    print("For production use, set DEV_TEST_SPEED/SUPER_DEV_SPEED = False in config.py")
    print("=" * 60 + "\n")
