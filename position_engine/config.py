"""
Position Engine - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the Position Engine.

Configuration is explicit: every component receives its config
object at construction time. There are no process-wide
settings; from_env() only builds an object, it never mutates
global state.

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv


# ============================================================
# POSITION SERVICE CONFIGURATION
# ============================================================

@dataclass
class PositionServiceConfig:
    """
    Position service configuration.
    """

    amount_tolerance: Decimal = Decimal("0.00000001")
    """
    Tolerance for decimal amount comparisons.

    A position counts as fully opened (closed) once its filled
    amount is within this tolerance of the target amount.
    """

    gain_percentage_scale: int = 2
    """Decimal places of Gain.percentage (ROUND_HALF_UP)."""


# ============================================================
# DATABASE CONFIGURATION
# ============================================================

@dataclass
class DatabaseConfig:
    """
    Durable position storage configuration.
    """

    url: str = "sqlite+aiosqlite:///:memory:"
    """SQLAlchemy async database URL."""

    echo: bool = False
    """Log SQL statements."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class PositionEngineConfig:
    """
    Master configuration for the Position Engine.
    """

    service: PositionServiceConfig = field(default_factory=PositionServiceConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    @classmethod
    def for_testing(cls) -> "PositionEngineConfig":
        """Get configuration for testing."""
        return cls(
            database=DatabaseConfig(url="sqlite+aiosqlite:///:memory:"),
        )

    @classmethod
    def from_env(
        cls,
        prefix: str = "POSITION_ENGINE_",
        dotenv_path: Optional[str] = None,
    ) -> "PositionEngineConfig":
        """
        Build configuration from environment variables.

        Variables are read as <prefix><NAME>, e.g.
        POSITION_ENGINE_DATABASE_URL. A .env file is loaded first
        if present; variables already set take precedence.
        """
        load_dotenv(dotenv_path)

        def get(name: str, default: str) -> str:
            return os.getenv(f"{prefix}{name}", default)

        def get_bool(name: str, default: bool) -> bool:
            return get(name, str(default)).strip().lower() in ("1", "true", "yes", "on")

        service = PositionServiceConfig(
            amount_tolerance=Decimal(get("AMOUNT_TOLERANCE", "0.00000001")),
            gain_percentage_scale=int(get("GAIN_PERCENTAGE_SCALE", "2")),
        )
        database = DatabaseConfig(
            url=get("DATABASE_URL", "sqlite+aiosqlite:///:memory:"),
            echo=get_bool("DATABASE_ECHO", False),
        )
        return cls(service=service, database=database)
