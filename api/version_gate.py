"""
Mobile app version gate.

Requests carrying an ``x-app-version`` header must be at or above the
configured minimum version; anything lower, or a header that is not a
dotted list of non-negative integers, gets HTTP 426 with the update
details.  Requests without the header are treated as web clients and pass.
"""
from dataclasses import dataclass

from flask import jsonify, request

VERSION_HEADER = "x-app-version"


@dataclass(frozen=True)
class VersionPolicy:
    minimum_required_version: str = "2.0.0"
    latest_version: str = "2.0.0"
    force_update: bool = True
    apk_url: str = ""

    def as_dict(self) -> dict:
        return {
            "minimumRequiredVersion": self.minimum_required_version,
            "latestVersion": self.latest_version,
            "forceUpdate": self.force_update,
            "apkUrl": self.apk_url,
        }

    def is_allowed(self, version) -> bool:
        provided = parse_version(version)
        required = parse_version(self.minimum_required_version)
        if provided is None or required is None:
            return False
        return compare_versions(provided, required) >= 0


def parse_version(raw) -> tuple[int, ...] | None:
    """Version components as integers, or None when malformed."""
    if not raw or not isinstance(raw, str):
        return None
    parts = raw.strip().split(".")
    if not all(part.isdigit() for part in parts):
        return None
    return tuple(int(part) for part in parts)


def compare_versions(left: tuple[int, ...], right: tuple[int, ...]) -> int:
    """-1, 0 or 1; missing trailing components count as 0."""
    length = max(len(left), len(right))
    left = left + (0,) * (length - len(left))
    right = right + (0,) * (length - len(right))
    return (left > right) - (left < right)


def make_version_check(policy: VersionPolicy, exempt_endpoints=()):
    """Build a before_request hook enforcing *policy*."""

    def check_version():
        if request.endpoint in exempt_endpoints:
            return None
        version = request.headers.get(VERSION_HEADER)
        if not version:
            return None
        if policy.is_allowed(version):
            return None
        return jsonify({
            "message": "Please update app",
            "error": (
                f"App version {version} is not supported. "
                f"Minimum required: {policy.minimum_required_version}"
            ),
            "updateRequired": True,
            "config": policy.as_dict(),
        }), 426

    return check_version
