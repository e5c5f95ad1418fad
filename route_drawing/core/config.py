# route_drawing/core/config.py
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables (.env file).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    APP_NAME: str = "Route Drawing Engine API"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Which backend resolves a waypoint pair into a road polyline
    ROUTING_PROVIDER: Literal["mapbox", "osmnx"] = "mapbox"

    MAPBOX_ACCESS_TOKEN: Optional[str] = None
    MAPBOX_BASE_URL: str = "https://api.mapbox.com"
    MAPBOX_PROFILE: str = "driving"

    # Seconds before a segment request is abandoned for the straight fallback
    ROUTING_TIMEOUT_S: float = 8.0
    # Max distance (metres) between an anchor and its dense-buffer sample
    ROUTING_TOLERANCE_M: float = 25.0

    # OSMnx provider download radius cap
    GRAPH_MAX_RADIUS_M: float = 15_000.0

    PLACES_COUNTRY: str = "ZA"
    PLACES_LIMIT: int = 5

    MAX_ROUTES_PER_COLLECTION: int = 5
    ROUTE_COLOURS: List[str] = [
        "#193148",
        "#eba9b7",
        "#BCF9F9",
        "#F9E1BC",
        "#C1F9BC",
        "#A9C6EB",
    ]

    # "truncate" drops everything after the removed waypoint,
    # "reconnect" routes predecessor -> successor instead.
    REMOVAL_STRATEGY: Literal["truncate", "reconnect"] = "truncate"
    MOVE_REROUTE_FORWARD: bool = False


settings = Settings()
