from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = None
    mysql_db_host: str = "localhost"
    mysql_db_user: str = "root"
    mysql_db_password: str = ""
    mysql_db_name: str = "flowbot"
    mysql_db_port: int = 3306

    db_pool_size: int = 10
    db_max_overflow: int = 0
    db_pool_timeout: float = 5.0
    db_pool_recycle: int = 3600
    db_pool_pre_ping: bool = True
    db_health_interval_seconds: float = 60.0

    flow_max_fallbacks: int = 0  # 0 = unbounded
    flow_max_jumps_per_turn: int = 10
    conversation_ttl_seconds: int = 0  # 0 = never expire

    chatflow_api_url: str = "https://app.chatflow.kz/api/v1/send-text"
    chatflow_media_base_url: str = "https://app.chatflow.kz/api/v1"
    chatflow_token: Optional[str] = None
    chatflow_instance_id: Optional[str] = None
    transport_timeout_seconds: float = 30.0

    samples_local_media_path: str = "assets/sample.png"
    public_base_url: str = "http://localhost:3008"

    host: str = "0.0.0.0"
    port: int = 3008
    pool_monitor_enabled: bool = True

    log_level: str = "INFO"
    debug: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def db_url(self) -> str:
        """Database URL, composed from the MYSQL_DB_* variables when DATABASE_URL is unset."""
        if self.database_url:
            return self.database_url
        return (
            f"mysql+pymysql://{self.mysql_db_user}:{self.mysql_db_password}"
            f"@{self.mysql_db_host}:{self.mysql_db_port}/{self.mysql_db_name}?charset=utf8mb4"
        )


settings = Settings()
