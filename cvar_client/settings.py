from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CVAR_")

    API_BASE: str = "http://127.0.0.1:8000"
    HTTP_TIMEOUT_S: float = 30.0

    # polling
    POLL_INTERVAL_S: float = 0.8
    POLL_TIMEOUT_S: float = 180.0
    # memo generation is slower
    POLL_TIMEOUT_MEMO_S: float = 240.0

    # artifact conventions of the optimizer service
    FIGURES_DIR: str = "figures"
    FIGURE_EXTENSIONS: List[str] = [".png"]
    ARTIFACT_ALLOW_LIST: List[str] = [
        "summary.json",
        "weights_opt.csv",
        "trades.csv",
        "objective_history.csv",
        "portfolio_returns_full.csv",
    ]

    LOG_LEVEL: str = "INFO"

settings = Settings()
