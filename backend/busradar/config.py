from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    lta_base_url: str = "https://datamall2.mytransport.sg/ltaodataservice"
    lta_account_key: str = ""
    redis_url: str = "redis://localhost:6379/0"
    http_timeout_seconds: float = 30.0
    http_max_retries: int = 2

    data_dir: str = "data"
    catalog_cache_file: str = "bus_stops_cache.json"
    preferences_file: str = "preferences.json"
    catalog_ttl_hours: int = 24
    catalog_page_size: int = 500
    catalog_refresh_hours: int = 24

    # Map stop budgets per zoom tier (span in degrees)
    max_stops_zoomed_in: int = 50
    max_stops_medium_zoom: int = 30
    max_stops_zoomed_out: int = 15
    zoomed_in_span: float = 0.01
    medium_zoom_span: float = 0.05

    default_search_radius: int = 500  # meters
    arrival_refresh_interval: int = 20  # seconds
    max_working_set: int = 8
    refresh_flash_seconds: float = 2.0

    show_wheelchair_accessible: bool = True
    show_bus_type: bool = True
    show_load_indicator: bool = True

    model_config = {"env_prefix": "", "case_sensitive": False}


settings = Settings()
