"""Dependency job configuration value object."""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tracelens.common.config import StorageSettings
from tracelens.schemas.span import date_to_day


def parse_contact_point(value: str, default_port: int = 5432) -> tuple[str, int]:
    """Split a ``host:port`` contact point.

    Args:
        value: Contact point. The port is optional.
        default_port: Port used when none is given.

    Returns:
        Tuple of (host, port).
    """
    value = value.strip()
    if not value:
        raise ValueError("empty contact point")

    host, sep, port = value.rpartition(":")
    if not sep:
        return value, default_port
    if not host:
        raise ValueError(f"contact point has no host: {value!r}")
    if not port.isdigit() or not 0 < int(port) <= 65535:
        raise ValueError(f"invalid port in contact point: {value!r}")
    return host, int(port)


class JobConfig(BaseModel):
    """Configuration for one dependency job run.

    Built once and never mutated; a rerun constructs a new job from the
    same config.
    """

    model_config = ConfigDict(frozen=True)

    keyspace: str = Field(..., min_length=1, max_length=63)
    contact_points: tuple[str, ...] = Field(..., min_length=1)
    day: int = Field(..., description="UTC epoch day")

    @field_validator("keyspace")
    @classmethod
    def validate_keyspace(cls, v: str) -> str:
        """Keyspaces are plain identifiers."""
        if not (v[0].isalpha() or v[0] == "_") or not all(c.isalnum() or c == "_" for c in v):
            raise ValueError(f"invalid keyspace name: {v!r}")
        return v.lower()

    @field_validator("contact_points")
    @classmethod
    def validate_contact_points(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Every contact point must parse as host[:port]."""
        normalized = []
        for point in v:
            host, port = parse_contact_point(point)
            normalized.append(f"{host}:{port}")
        return tuple(normalized)

    @classmethod
    def for_date(
        cls,
        keyspace: str,
        contact_points: list[str] | tuple[str, ...],
        value: date,
    ) -> "JobConfig":
        """Build a config for a calendar date (UTC)."""
        return cls(keyspace=keyspace, contact_points=tuple(contact_points), day=date_to_day(value))

    @classmethod
    def from_settings(cls, settings: StorageSettings, day: int) -> "JobConfig":
        """Build a config from storage settings."""
        return cls(
            keyspace=settings.keyspace,
            contact_points=tuple(settings.contact_point_list),
            day=day,
        )
