from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'LMS Sync'
    app_env: str = 'local'
    app_timezone: str = 'UTC'
    log_level: str = 'INFO'
    database_url: str = 'sqlite:///./lms_sync.db'
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200
    legacy_backend: str = 'firestore'
    legacy_project_id: str = ''
    legacy_credentials_json: str = ''
    legacy_export_path: str = ''
    propagate_batch_course: bool = True
    roster_sweep_enabled: bool = False
    roster_sweep_minutes: int = 60
    job_lock_redis_url: str = ''
    admin_api_token: str = ''


settings = Settings()
