"""Anti-detection helpers shared by every automated browser context."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any

VIEWPORTS: list[dict[str, int]] = [
    {"width": 1366, "height": 768},
    {"width": 1440, "height": 900},
    {"width": 1536, "height": 864},
    {"width": 1920, "height": 1080},
    {"width": 1280, "height": 720},
]

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--no-first-run",
    "--disable-dev-shm-usage",
]

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
"""


@dataclass
class AntiDetectionConfig:
    min_delay: float = 8.0
    max_delay: float = 20.0
    batch_limit: int = 15
    batch_cooldown: float = 30 * 60
    scroll_min: int = 300
    scroll_max: int = 800


def random_viewport() -> dict[str, int]:
    return dict(random.choice(VIEWPORTS))


def human_delay_seconds(min_delay: float, max_delay: float) -> float:
    """Normally distributed delay centred in the window, clamped to it."""
    mean = (min_delay + max_delay) / 2
    std_dev = (max_delay - min_delay) / 4
    return min(max(random.gauss(mean, std_dev), min_delay), max_delay)


async def human_pause(config: AntiDetectionConfig) -> None:
    await asyncio.sleep(human_delay_seconds(config.min_delay, config.max_delay))


async def human_scroll(page: Any, config: AntiDetectionConfig, steps: int = 3) -> None:
    for _ in range(steps):
        await page.mouse.wheel(0, random.randint(config.scroll_min, config.scroll_max))
        await asyncio.sleep(random.uniform(0.5, 1.5))
