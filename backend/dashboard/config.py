"""Client configuration, read from the environment (and a .env file if present)."""
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

TABLE_TIMEOUT = 10.0
EXPORT_TIMEOUT = 120.0
SEARCH_DEBOUNCE = 0.3


@dataclass(frozen=True)
class DashboardConfig:
    api_url: str = "http://localhost:8000/api/"
    download_dir: Path = Path.home() / "Downloads"
    table_timeout: float = TABLE_TIMEOUT
    # Formatting thousands of rows into a document is far slower than a page read.
    export_timeout: float = EXPORT_TIMEOUT
    search_debounce: float = SEARCH_DEBOUNCE
    page_size: int = 10

    @classmethod
    def from_env(cls) -> "DashboardConfig":
        load_dotenv()
        api_url = os.getenv("HIVE_API_URL", cls.api_url)
        if not api_url.endswith("/"):
            api_url += "/"
        return cls(
            api_url=api_url,
            download_dir=Path(os.getenv("HIVE_DOWNLOAD_DIR", str(cls.download_dir))).expanduser(),
            table_timeout=float(os.getenv("HIVE_TABLE_TIMEOUT", TABLE_TIMEOUT)),
            export_timeout=float(os.getenv("HIVE_EXPORT_TIMEOUT", EXPORT_TIMEOUT)),
            search_debounce=float(os.getenv("HIVE_SEARCH_DEBOUNCE", SEARCH_DEBOUNCE)),
            page_size=int(os.getenv("HIVE_PAGE_SIZE", "10")),
        )
