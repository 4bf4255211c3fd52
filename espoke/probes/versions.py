import re
from enum import Enum
from typing import Any, Dict

from espoke.errors import ResponseParseError


RESTORE_MIN_MAJOR_VERSION = 7
DASHBOARD_LEVEL_MIN_MAJOR_VERSION = 8

_major_version_pattern = re.compile(r"^\s*v?(\d+)")


def parse_major_version(version: str | None) -> int | None:
    """
    Return the leading integer component of a version string.

    "7.10.2" -> 7, "60.0" -> 60, "" or "latest" -> None.
    """
    if not version:
        return None

    match = _major_version_pattern.match(version)
    if match is None:
        return None

    return int(match.group(1))


def restore_supported(version: str | None) -> bool:
    major = parse_major_version(version)
    return major is not None and major >= RESTORE_MIN_MAJOR_VERSION


class SearchResponseSchema(Enum):
    LEGACY = "legacy"     # hits.total is a number
    CURRENT = "current"   # hits.total is {"value": ..., "relation": ...}

    @classmethod
    def for_version(cls, version: str | None):
        major = parse_major_version(version)
        if major is not None and major < RESTORE_MIN_MAJOR_VERSION:
            return cls.LEGACY

        return cls.CURRENT

    def total_hits(
        self,
        body: Dict[str, Any],
        cluster: str,
        index: str,
    ) -> int:
        hits = body.get("hits")
        if not isinstance(hits, dict):
            raise ResponseParseError(
                "Search response doesn't contain a hits field",
                operation="search",
                cluster=cluster,
                index=index,
            )

        total = hits.get("total")
        if self == SearchResponseSchema.CURRENT:
            total = total.get("value") if isinstance(total, dict) else None

        if not isinstance(total, int) or isinstance(total, bool):
            raise ResponseParseError(
                f"Search response hits.total doesn't match the {self.value} schema",
                operation="search",
                cluster=cluster,
                index=index,
            )

        return total


class DashboardStatusSchema(Enum):
    STATE = "state"   # status.overall.state == "green"
    LEVEL = "level"   # status.overall.level == "available"

    @classmethod
    def for_version(cls, version: str | None):
        major = parse_major_version(version)
        if major is not None and major >= DASHBOARD_LEVEL_MIN_MAJOR_VERSION:
            return cls.LEVEL

        return cls.STATE

    def is_healthy(self, body: Dict[str, Any]) -> bool:
        status = body.get("status")
        if not isinstance(status, dict):
            return False

        overall = status.get("overall")
        if not isinstance(overall, dict):
            return False

        if self == DashboardStatusSchema.LEVEL:
            return overall.get("level") == "available"

        return overall.get("state") == "green"
