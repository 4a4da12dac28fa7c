from pydantic import BaseModel, Field


class FinnhubConfig(BaseModel):
    """Configuration for Finnhub API client."""

    base_url: str = "https://finnhub.io/api/v1"
    timeout_seconds: float = 10.0
    max_connections: int = 10
    max_keepalive_connections: int = 5
    max_retries: int = Field(default=1, ge=0)  # retries after the first attempt
