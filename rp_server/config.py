"""Pydantic based configuration for the example relying party."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from u2fserver import ServerSettings

DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_DB_PATH = DATA_DIR / "rp.db"


class RPSettings(BaseModel):
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DB_PATH}",
        description="SQLAlchemy connection string used by the RP server",
    )
    origin: str = Field(
        default="https://localhost:3000",
        description="Expected origin for clientData validation",
    )
    app_id: str = Field(
        default="https://localhost:3000",
        description="U2F application identifier sent with every challenge",
    )
    challenge_ttl: float = Field(
        default=300.0,
        gt=0,
        description="Seconds a pending challenge stays valid",
    )
    debug: bool = Field(default=False, description="Start the U2F server in debug mode")
    u2f: ServerSettings = Field(default_factory=ServerSettings)
