from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Mycosync Grow Room Monitor"
    timezone: str = "Europe/Madrid"

    # Sampling (simulated source tick)
    sample_seconds: float = 5.0

    # Buffer ceilings
    live_ceiling: int = 1440       # high-frequency live sensor stream
    simulated_ceiling: int = 24    # no-network fallback

    # Remote history retention
    history_interval_seconds: float = 300.0
    history_max_records: int = 1440

    # Alerts
    alert_ttl_seconds: float = 10.0
    alert_backlog_size: int = 5

    # Optimistic actuator commands are provisional for this long
    optimistic_timeout_seconds: float = 15.0

    # Firebase. Leave the database url empty to run on the simulated source.
    firebase_database_url: str = Field(default="")
    firebase_api_key: str = Field(default="")
    request_timeout_seconds: float = 10.0

    # Alert bands per channel (independent from the admin control ranges)
    temperature_min: float = 18.0
    temperature_max: float = 28.0
    temperature_optimal: float = 23.0
    humidity_min: float = 70.0
    humidity_max: float = 90.0
    humidity_optimal: float = 80.0
    co2_min: float = 400.0
    co2_max: float = 1200.0
    co2_optimal: float = 800.0
    co2_alert_low: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s - %(message)s"
    log_file: str = "mycosync.log"
    log_max_bytes: int = 2_000_000
    log_backup_count: int = 5


settings = Settings()
