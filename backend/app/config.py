from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Iterable, List

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class IceServer(BaseModel):
    """Representation of a WebRTC ICE server configuration."""

    urls: list[str] = Field(default_factory=list, description="ICE server URLs")
    username: str | None = Field(default=None, description="Optional TURN username")
    credential: str | None = Field(default=None, description="Optional TURN credential")

    @field_validator("urls", mode="before")
    @classmethod
    def ensure_list(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple, set)):
            return [str(item) for item in value]
        return [] if value in (None, Ellipsis) else [str(value)]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Rivift Connect", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=False, description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
        ],
        description="List of allowed CORS origins",
    )
    cors_allow_origin_regex: str | None = Field(
        default=None,
        description="Optional regular expression that matches allowed CORS origins",
    )

    database_url_override: str | None = Field(
        default=None,
        alias="DATABASE_URL",
        description="Full SQLAlchemy URL; takes precedence over the DB_* parts.",
    )
    database_user: str = Field(default="rivift", alias="DB_USER")
    database_password: str = Field(default="rivift", alias="DB_PASSWORD")
    database_host: str = Field(default="db", alias="DB_HOST")
    database_port: int = Field(default=3306, alias="DB_PORT")
    database_name: str = Field(default="rivift", alias="DB_NAME")

    chat_history_default_limit: int = Field(default=50)
    chat_history_max_limit: int = Field(default=200)

    websocket_keepalive_timeout_seconds: float = Field(
        default=30,
        description="Idle period after which the server checks whether to ping a socket.",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25,
        description="Minimum delay between two keepalive pings on an idle socket.",
    )

    trust_declared_sender: bool = Field(
        default=False,
        description=(
            "Act on the client-declared 'from' field instead of the identity bound at login. "
            "When disabled a mismatching 'from' is rejected."
        ),
    )

    webrtc_stun_servers: list[str] = Field(
        default_factory=list,
        description="STUN endpoints exposed to clients.",
    )
    webrtc_turn_servers: list[str] = Field(
        default_factory=list,
        description="TURN endpoints exposed to clients.",
    )
    webrtc_turn_username: str | None = Field(default=None, description="Optional TURN username.")
    webrtc_turn_credential: str | None = Field(default=None, description="Optional TURN credential.")

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
            "?charset=utf8mb4"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("webrtc_stun_servers", "webrtc_turn_servers", mode="before")
    @classmethod
    def parse_server_list(cls, value: Any) -> list[Any] | Any:
        if value in (None, "", Ellipsis):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item) for item in value]
        return [value]

    def _aggregate_ice_servers(self) -> list[IceServer]:
        servers: list[IceServer] = []
        if self.webrtc_stun_servers:
            servers.append(IceServer(urls=self.webrtc_stun_servers))
        if self.webrtc_turn_servers:
            servers.append(
                IceServer(
                    urls=self.webrtc_turn_servers,
                    username=self.webrtc_turn_username,
                    credential=self.webrtc_turn_credential,
                )
            )
        if not servers:
            servers.append(IceServer(urls=["stun:stun.l.google.com:19302"]))
        return servers

    @property
    def webrtc_ice_servers_payload(self) -> list[dict[str, Any]]:
        return [server.model_dump(mode="json") for server in self._aggregate_ice_servers()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
