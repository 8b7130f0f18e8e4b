from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./tournament_engine.db"
    SQL_ECHO: bool = False
    LOG_LEVEL: str = "INFO"

    # Scheduling defaults, in minutes
    DEFAULT_MATCH_DURATION: int = 12
    DEFAULT_MATCH_INTERVAL: int = 15

    DEFAULT_SCORING_WIN: int = 3
    DEFAULT_SCORING_DRAW: int = 1
    DEFAULT_SCORING_LOSS: int = 0

    class Config:
        env_file = ".env"

settings = Settings()
