"""Configuration models using Pydantic for type safety and validation."""

import os
import time
from typing import Optional
from urllib.parse import urlsplit

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_CA_PATH = "/app/certs/ca.pem"
DEFAULT_PORTS = {"mqtt": 1883, "mqtts": 8883}


class TLSConfig(BaseModel):
    """TLS/SSL configuration for the broker connection."""

    ca_certs: Optional[str] = Field(None, description="Extra CA certificate file")
    cert_hostname: Optional[str] = Field(
        None, description="Hostname the broker certificate is verified against"
    )

    @field_validator("ca_certs")
    @classmethod
    def validate_ca_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the CA path exists if provided."""
        if v and not os.path.exists(v):
            raise ValueError(f"Certificate file not found: {v}")
        return v


class MQTTConfig(BaseModel):
    """MQTT broker configuration."""

    url: str = Field("mqtt://localhost:1883", description="Broker URL (mqtt:// or mqtts://)")
    username: Optional[str] = Field(None, description="MQTT username")
    password: Optional[str] = Field(None, description="MQTT password")
    client_id_prefix: str = Field("rv-backend", description="Prefix for the generated client ID")
    keepalive: int = Field(60, ge=1, description="Keep-alive interval in seconds")
    reconnect_period: int = Field(5, ge=1, description="Fixed reconnect delay in seconds")
    tls: Optional[TLSConfig] = Field(None, description="TLS/SSL configuration")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate the broker URL scheme and host."""
        parts = urlsplit(v)
        if parts.scheme not in DEFAULT_PORTS:
            raise ValueError(f"Unsupported broker URL scheme: '{v}'. Use mqtt:// or mqtts://")
        if not parts.hostname:
            raise ValueError(f"Broker URL has no host: '{v}'")
        return v

    @property
    def use_tls(self) -> bool:
        return urlsplit(self.url).scheme == "mqtts"

    @property
    def host(self) -> str:
        return urlsplit(self.url).hostname

    @property
    def port(self) -> int:
        parts = urlsplit(self.url)
        return parts.port or DEFAULT_PORTS[parts.scheme]

    def generate_client_id(self) -> str:
        """Build a per-process client ID from the prefix and the current time."""
        return f"{self.client_id_prefix}-{int(time.time() * 1000)}"


class SimulationConfig(BaseModel):
    """Intervals for the simulated sensor tickers."""

    level_interval: float = Field(2.0, gt=0, description="Trailer level ticker interval (seconds)")
    water_interval: float = Field(10.0, gt=0, description="Water tank ticker interval (seconds)")


class DeploymentConfig(BaseModel):
    """Firmware deployment storage configuration."""

    storage_path: str = Field("/data/deployments", description="Directory for uploaded packages")
    max_bytes: int = Field(2 * 1024 * 1024 * 1024, ge=1, description="Maximum upload size")


class AuthConfig(BaseModel):
    """Dashboard login configuration."""

    admin_password: Optional[str] = Field(None, description="Password for the default admin user")
    session_hours: int = Field(24, ge=1, description="Session lifetime in hours")


class AppConfig(BaseModel):
    """Main application configuration."""

    mqtt: MQTTConfig = Field(default_factory=MQTTConfig, description="MQTT configuration")
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    deployments: DeploymentConfig = Field(default_factory=DeploymentConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    database_path: str = Field("data/rv_dashboard.db", description="Document store file")
    frontend_dir: Optional[str] = Field(
        None, description="Built dashboard frontend served at / (unset when served elsewhere)"
    )
    http_port: int = Field(8000, ge=1, le=65535, description="HTTP API port")
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper().strip()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log_level: '{v}'. Valid options: {', '.join(sorted(valid_levels))}")
        return v_upper

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load configuration from environment variables."""
        load_dotenv()

        broker_url = os.getenv("MQTT_BROKER_URL", "mqtt://localhost:1883")

        # The CA file is optional: a missing default path falls back to system roots
        tls_config = None
        if urlsplit(broker_url).scheme == "mqtts":
            ca_path = os.getenv("MQTT_TLS_CA_CERTS", DEFAULT_CA_PATH)
            tls_config = TLSConfig(
                ca_certs=ca_path if os.path.exists(ca_path) else None,
                cert_hostname=os.getenv("TLS_CERT_HOSTNAME") or None,
            )

        mqtt_config = MQTTConfig(
            url=broker_url,
            username=os.getenv("MQTT_USERNAME") or None,
            password=os.getenv("MQTT_PASSWORD") or None,
            client_id_prefix=os.getenv("MQTT_CLIENT_ID_PREFIX", "rv-backend"),
            keepalive=int(os.getenv("MQTT_KEEPALIVE", "60")),
            reconnect_period=int(os.getenv("MQTT_RECONNECT_PERIOD", "5")),
            tls=tls_config,
        )

        simulation_config = SimulationConfig(
            level_interval=float(os.getenv("LEVEL_TICK_SECONDS", "2")),
            water_interval=float(os.getenv("WATER_TICK_SECONDS", "10")),
        )

        deployment_config = DeploymentConfig(
            storage_path=os.getenv("DEPLOYMENT_STORAGE_PATH", "/data/deployments"),
            max_bytes=int(os.getenv("DEPLOYMENT_MAX_BYTES", str(2 * 1024 * 1024 * 1024))),
        )

        auth_config = AuthConfig(
            admin_password=os.getenv("ADMIN_PASSWORD") or None,
            session_hours=int(os.getenv("SESSION_DURATION_HOURS", "24")),
        )

        return cls(
            mqtt=mqtt_config,
            simulation=simulation_config,
            deployments=deployment_config,
            auth=auth_config,
            database_path=os.getenv("DATABASE_PATH", "data/rv_dashboard.db"),
            frontend_dir=os.getenv("FRONTEND_DIR") or None,
            http_port=int(os.getenv("HTTP_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
