"""Configuration for the U2F server."""

from __future__ import annotations

from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Runtime settings for challenge generation and response verification."""

    model_config = SettingsConfigDict(env_prefix="U2FS_")

    version: str = Field(
        default="U2F_V2",
        description="Protocol version advertised in challenge messages",
    )
    challenge_size: int = Field(
        default=32,
        ge=8,
        description="Number of random bytes in each challenge nonce",
    )
    attestation_policy: Literal["any", "trusted"] = Field(
        default="any",
        description="'any' accepts every parseable P-256 attestation certificate, "
        "'trusted' requires one issued by a configured root",
    )
    attestation_roots: List[str] = Field(
        default_factory=list,
        description="PEM files holding trusted attestation root certificates",
    )
    log_format: str = Field(
        default="%(message)s",
        description="Format used for the stream handler attached in debug mode",
    )
