from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List

class Settings(BaseSettings):
    redis_url: str = "redis://localhost:6379/0"

    # Container runtime CLI
    docker_command: str = "docker"
    compose_command: str = "docker compose"

    # Readiness polling
    wait_interval_seconds: int = 2
    wait_max_retries: int = 22  # multi-container waits, ~44s
    single_wait_max_retries: int = 10

    # Test step
    test_timeout: int = 600  # 10 minutes default

    log_level: str = "INFO"

    class Config:
        env_file = ".env"

    @property
    def compose_argv(self) -> List[str]:
        return self.compose_command.split()

@lru_cache()
def get_settings() -> Settings:
    return Settings()
