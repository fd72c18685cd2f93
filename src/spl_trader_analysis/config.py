import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_RPC_URL = "https://mainnet.helius-rpc.com/"


@dataclass
class Config:
    """Application configuration."""

    # API Keys
    helius_api_key: str

    # API URLs
    helius_rpc_url: str = DEFAULT_RPC_URL

    # Fetch settings
    page_size: int = 100  # Helius page limit
    rate_limit_delay: float = 0.1  # seconds between API calls
    request_timeout: float = 30.0

    # Analysis defaults
    max_wallets: int = 50
    min_amount: float = 0.0
    max_amount: float = 1_000_000.0

    # Output settings
    output_format: str = "table"  # table, csv, json
    log_level: str = "WARNING"

    @property
    def rpc_url(self) -> str:
        """RPC endpoint with the API key attached."""
        return f"{self.helius_rpc_url}?api-key={self.helius_api_key}"

    @classmethod
    def from_env(cls, api_key: Optional[str] = None) -> "Config":
        """Create config from environment variables."""
        helius_key = api_key or os.getenv("HELIUS_API_KEY")
        if not helius_key:
            raise ValueError(
                "HELIUS_API_KEY environment variable is required")

        return cls(
            helius_api_key=helius_key,
            helius_rpc_url=os.getenv("HELIUS_RPC_URL", DEFAULT_RPC_URL),
            page_size=int(os.getenv("PAGE_SIZE", "100")),
            rate_limit_delay=float(os.getenv("RATE_LIMIT_DELAY", "0.1")),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),
            max_wallets=int(os.getenv("MAX_WALLETS", "50")),
            min_amount=float(os.getenv("MIN_AMOUNT", "0")),
            max_amount=float(os.getenv("MAX_AMOUNT", "1000000")),
            output_format=os.getenv("OUTPUT_FORMAT", "table"),
            log_level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        )
