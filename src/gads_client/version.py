"""Google Ads API version selection."""
from __future__ import annotations

import pkgutil
import re

import google.ads.googleads

_VERSION_PATTERN = re.compile(r"^v(\d+)$")


def installed_api_versions() -> list[str]:
    """Return the ``vNN`` packages shipped by google-ads, oldest first."""
    versions = []
    for module in pkgutil.iter_modules(google.ads.googleads.__path__):
        match = _VERSION_PATTERN.match(module.name)
        if module.ispkg and match:
            versions.append((int(match.group(1)), module.name))
    return [name for _, name in sorted(versions)]


def latest_api_version() -> str:
    versions = installed_api_versions()
    if not versions:
        raise RuntimeError("google-ads is installed without any API version packages")
    return versions[-1]


def failure_metadata_key(version: str) -> str:
    """Trailing metadata key under which the API embeds a serialized GoogleAdsFailure."""
    return f"google.ads.googleads.{version}.errors.googleadsfailure-bin"


DEFAULT_API_VERSION = latest_api_version()


__all__ = [
    "DEFAULT_API_VERSION",
    "failure_metadata_key",
    "installed_api_versions",
    "latest_api_version",
]
