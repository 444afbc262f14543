"""Relay server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from relay.messaging.encoder import MAX_PAYLOAD_BYTES, WireFormat
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class RelayServerSettings(BaseSettings):
    model_config = {"env_prefix": "RELAY_"}

    server_name: str = Field(default="Salpakan Relay Server", min_length=1)
    public_host: str | None = None  # advertised in /discover; defaults to the request's host
    port: int = Field(default=8080, ge=1, le=65535)
    log_dir: str | None = None
    cors_origins: list[str] = ["*"]
    wire_format: WireFormat = WireFormat.JSON
    max_message_bytes: int = Field(default=MAX_PAYLOAD_BYTES, ge=1024)

    heartbeat_interval_seconds: float = Field(default=30, gt=0)
    room_sweep_interval_seconds: float = Field(default=300, gt=0)
    room_idle_ttl_seconds: float = Field(default=1800, ge=0)  # 0 disables the idle sweep
    stats_interval_seconds: float = Field(default=300, gt=0)
    game_end_grace_seconds: float = Field(default=5, ge=0)
    shutdown_grace_seconds: float = Field(default=10, gt=0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
