"""Timing utilities"""

import asyncio
import random


async def human_delay(min_ms=300, max_ms=800):
    """Random human-like delay"""
    if max_ms <= 0:
        return
    delay = random.uniform(min_ms, max_ms) / 1000
    await asyncio.sleep(delay)


async def settle(timing, key):
    """Sleep for the `<key>_min`..`<key>_max` window of a timing profile"""
    await human_delay(timing[f"{key}_min"], timing[f"{key}_max"])


def format_elapsed_time(seconds):
    """Format elapsed time in human-readable format"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        mins = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{mins}m {secs}s"
    else:
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        return f"{hours}h {mins}m"
