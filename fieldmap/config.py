# fieldmap/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool = False

    # Backend API
    api_base_url: str | None = None  # e.g., "https://app.example.com"
    api_token: str | None = None  # Bearer session token
    api_timeout_seconds: float = 30.0
    api_connect_timeout_seconds: float = 5.0

    # Live tracking / polling
    team_location_poll_interval: float = 30.0  # seconds, while live tracking is on
    geofence_alert_poll_interval: float = 60.0  # seconds, supervisors only

    # Viewport fitting
    viewport_fit_debounce_seconds: float = 0.3
    viewport_width: float = 390.0  # screen points
    viewport_height: float = 844.0
    fit_padding_top_expanded: float = 200.0  # header overlay expanded
    fit_padding_top_collapsed: float = 100.0
    fit_padding_side: float = 60.0
    fit_padding_bottom_extra: float = 100.0  # added on top of the bottom nav height
    bottom_nav_height: float = 80.0
    min_fit_delta: float = 0.01  # degrees; keeps a single marker from zooming to infinity

    # Default / focus regions
    default_region_latitude: float = -16.9186
    default_region_longitude: float = 145.7781
    default_region_delta: float = 0.5
    center_on_me_delta: float = 0.05
    worker_focus_zoom: int = 17  # street level

    # Navigation hand-off
    maps_preference: Literal["google", "apple"] = "google"

    # Dispatcher position when the host has no device GPS (e.g., desktop console)
    dispatcher_latitude: float | None = None
    dispatcher_longitude: float | None = None

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def dispatcher_location_configured(self) -> bool:
        return self.dispatcher_latitude is not None and self.dispatcher_longitude is not None

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []
        required_fields = [
            ("api_base_url", self.api_base_url),
        ]
        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.api_base_url:
        warnings.append("api_base_url is not set (all refreshes will degrade to empty collections).")

    if s.api_base_url and not s.api_token:
        warnings.append("api_token is not set (the backend will likely reject map requests).")

    if s.api_base_url and s.api_base_url.startswith("http://") and s.is_production:
        warnings.append("prod: api_base_url uses plain http (session token sent in clear text).")

    # --- Polling ---
    if s.team_location_poll_interval < 5:
        warnings.append(
            f"team_location_poll_interval={s.team_location_poll_interval}s is very aggressive "
            "(battery and API load)."
        )
    if s.geofence_alert_poll_interval < 5:
        warnings.append(
            f"geofence_alert_poll_interval={s.geofence_alert_poll_interval}s is very aggressive."
        )

    # --- Viewport ---
    side = 2 * s.fit_padding_side
    if side >= s.viewport_width:
        warnings.append("fit_padding_side leaves no horizontal room for markers.")
    vertical = s.fit_padding_top_expanded + s.bottom_nav_height + s.fit_padding_bottom_extra
    if vertical >= s.viewport_height:
        warnings.append("vertical fit padding leaves no room for markers.")

    if (s.dispatcher_latitude is None) != (s.dispatcher_longitude is None):
        warnings.append("Only one of dispatcher_latitude/dispatcher_longitude is set; both are ignored.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")

settings = Settings()
