"""Runtime configuration for the hub."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_PG_PORT = 5432


@dataclass
class PGDBConf:
    """Connection settings for the PostgreSQL device database."""

    user: str = ""
    password: str = ""
    host: str = ""
    port: int = DEFAULT_PG_PORT
    schema: str = ""
    db: str = ""


@dataclass
class Config:
    """Top-level configuration of the hub."""

    db_conf: PGDBConf = field(default_factory=PGDBConf)