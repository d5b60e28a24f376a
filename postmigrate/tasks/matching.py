"""Case-insensitive glob and keyword matching against snapshot fields."""

from __future__ import annotations

import fnmatch
from typing import Iterable

from ..config import MatchRules
from ..contracts import DeviceRecord, DriverPackage


def glob_match(value: str, patterns: Iterable[str]) -> bool:
    value = (value or "").lower()
    return any(fnmatch.fnmatchcase(value, p.lower()) for p in patterns)


def keyword_match(value: str, keywords: Iterable[str]) -> bool:
    value = (value or "").lower()
    return any(k.lower() in value for k in keywords if k)


def is_stale_device(device: DeviceRecord, rules: MatchRules) -> bool:
    """A non-present device whose name or hardware id matches the rules."""
    if device.present:
        return False
    if glob_match(device.name, rules.device_name_patterns):
        return True
    ids = (device.instance_id, *device.hardware_ids)
    return any(glob_match(i, rules.device_hardware_ids) for i in ids)


def is_stale_driver(package: DriverPackage, rules: MatchRules) -> bool:
    names = (package.original_name, package.published_name)
    if any(glob_match(n, rules.driver_name_excludes) for n in names if n):
        return False
    if package.provider and glob_match(package.provider, rules.driver_providers):
        return True
    return keyword_match(package.original_name, rules.driver_name_keywords)
