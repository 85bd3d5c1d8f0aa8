"""
Debug screenshots for failed flow steps

Every failure path in the flow calls capture() so a broken run can be
diagnosed from the artifacts folder afterwards. Capturing is best-effort:
a screenshot that cannot be taken is reported and otherwise ignored.

The folder is cleared at the start of each lookup or batch, so it only ever
holds the screenshots of the most recent run.
"""

import re
import time

from playwright.async_api import Error as PlaywrightError

import fpl_meter_status.config as config


def _slug(label):
    return re.sub(r"[^a-z0-9]+", "-", label.lower()).strip("-") or "capture"


async def capture(page, label):
    """Save a full-page screenshot named `<epoch-ms>-<label>.png`"""
    if not config.CAPTURE_SCREENSHOTS:
        return None
    try:
        directory = config.ARTIFACTS_DIR
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{int(time.time() * 1000)}-{_slug(label)}.png"
        await page.screenshot(path=str(path), full_page=True)
        return path
    except (PlaywrightError, OSError) as e:
        print(f"  ⚠️ Screenshot '{label}' failed: {e}")
        return None


def clear_artifacts():
    """Remove screenshots left over from the previous run"""
    directory = config.ARTIFACTS_DIR
    if not directory.exists():
        return 0
    removed = 0
    for path in directory.iterdir():
        if path.is_file():
            path.unlink()
            removed += 1
    print(f"Cleared {removed} files from {directory}")
    return removed
