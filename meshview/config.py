from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_DEGRADED = 1.0
_DEFAULT_FAILURE = 5.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Mesh API (graph + metrics proxy)
    MESH_API_URL: str = "http://localhost:15220"
    MESH_API_TOKEN: str = ""
    MESH_CLUSTER: str = "hub"
    MESH_PLUGIN: str = "kiali"
    GRAPH_PATH: str = "/api/plugins/kiali/graph"
    METRICS_PATH: str = "/api/plugins/kiali/metrics"
    GRAPH_APPENDERS: list[str] = Field(
        default_factory=lambda: ["deadNode", "sidecarsCheck", "serviceEntry", "istio"]
    )

    # HTTP behaviour
    HTTP_TIMEOUT_SECONDS: float = 30.0
    HTTP_MAX_ATTEMPTS: int = 3
    METRICS_FETCH_TIMEOUT_SECONDS: float = 60.0

    # Edge health thresholds (HTTP error percentage)
    TRAFFIC_DEGRADED: float = _DEFAULT_DEGRADED
    TRAFFIC_FAILURE: float = _DEFAULT_FAILURE

    # Rendering
    RELAYOUT_DEBOUNCE_SECONDS: float = 0.1

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = Field(default="json", description="'json' for production, 'console' for dev")

    @model_validator(mode="after")
    def _sanitize_thresholds(self) -> Settings:
        degraded, failure = self.TRAFFIC_DEGRADED, self.TRAFFIC_FAILURE
        if degraded <= 0 or degraded >= 100 or degraded > failure:
            self.TRAFFIC_DEGRADED = _DEFAULT_DEGRADED
        if failure <= 0 or failure >= 100 or degraded > failure:
            self.TRAFFIC_FAILURE = _DEFAULT_FAILURE
        return self


def get_settings() -> Settings:
    return Settings()
