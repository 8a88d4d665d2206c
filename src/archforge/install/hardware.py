"""
CPU and GPU vendor detection.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from archforge.core.logging import get_logger
from archforge.core.models import HardwareProfile, HardwareVendor

if TYPE_CHECKING:
    from archforge.platform.base import PlatformBackend

logger = get_logger(__name__)

VENDOR_PATTERNS: list[tuple[HardwareVendor, re.Pattern[str]]] = [
    (HardwareVendor.NVIDIA, re.compile(r"nvidia", re.IGNORECASE)),
    (HardwareVendor.AMD, re.compile(r"\b(amd|authenticamd|advanced micro devices|ati)\b", re.IGNORECASE)),
    (HardwareVendor.INTEL, re.compile(r"\b(intel|genuineintel)\b", re.IGNORECASE)),
]


def classify_vendor(text: str | None) -> HardwareVendor:
    """Map a vendor string or device description to a known vendor."""
    if not text:
        return HardwareVendor.UNKNOWN
    for vendor, pattern in VENDOR_PATTERNS:
        if pattern.search(text):
            return vendor
    return HardwareVendor.UNKNOWN


def detect_hardware(backend: PlatformBackend) -> HardwareProfile:
    cpu_description = backend.read_cpu_vendor()
    gpu_descriptions = backend.list_display_controllers()

    profile = HardwareProfile(
        cpu=classify_vendor(cpu_description),
        gpus=[classify_vendor(d) for d in gpu_descriptions],
        cpu_description=cpu_description,
        gpu_descriptions=gpu_descriptions,
    )

    logger.info(
        "Hardware detected",
        cpu=profile.cpu.value,
        gpus=[g.value for g in profile.gpus],
    )
    for component in profile.unknown_components:
        logger.warning("Unrecognized hardware vendor", component=component)
    return profile
