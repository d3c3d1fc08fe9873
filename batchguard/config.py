from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Batch Guard'
    app_env: str = 'local'
    app_timezone: str = 'Asia/Kolkata'
    database_url: str = 'sqlite:///./batchguard.db'
    app_base_url: str = 'http://127.0.0.1:8000'
    identity_header: str = 'X-Auth-Subject'
    switch_history_default_limit: int = 100
    switch_history_max_limit: int = 500
    suspicious_min_switches: int = 2
    switch_conflict_retries: int = 1
    default_suspend_reason: str = 'Multiple batch switches detected'
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200


settings = Settings()
