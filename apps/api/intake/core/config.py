"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database (PostgreSQL in production, SQLite for local runs and tests)
    DATABASE_URL: str = "sqlite:///./client_intake.db"

    # Google Sheets mirror
    SHEETS_SPREADSHEET_ID: str = ""
    SHEETS_TAB_NAME: str = "Form Responses 1"
    SHEETS_EXPORT_URL: str = ""  # Overrides the gviz CSV export URL when set
    SHEETS_API_BASE: str = "https://sheets.googleapis.com/v4/spreadsheets"
    SHEETS_ACCESS_TOKEN: str = ""  # OAuth bearer token for write calls
    SHEETS_API_KEY: str = ""  # Optional key for read-only public sheets

    # Sheet layout: row index = position + header + template + 1 + adjustment
    SHEET_HEADER_ROWS: int = 1
    SHEET_TEMPLATE_ROWS: int = 1
    SHEET_ROW_INDEX_ADJUSTMENT: int = 1

    # Cache
    CACHE_TTL_SECONDS: float = 30.0
    MIRROR_INVALIDATION_DELAY_SECONDS: float = 2.0

    # Outbound calls (sheets + CRM webhook)
    OUTBOUND_TIMEOUT_SECONDS: float = 10.0

    # CRM webhook (Zoho Flow style receiver)
    CRM_WEBHOOK_URL: str = ""
    CRM_WEBHOOK_SECRET: str = ""
    CRM_WEBHOOK_USER_AGENT: str = "IRIAS-Ironworks-Webhook/1.0"

    # Business defaults
    DEFAULT_COMPANY_NAME: str = "IRIAS Ironworks"

    # Sync job
    SYNC_INTERVAL_MINUTES: int = 30
    SYNC_RECENT_PUSH_LIMIT: int = 50
    SYNC_ERROR_HISTORY: int = 10

    @property
    def sheets_configured(self) -> bool:
        return bool(self.SHEETS_SPREADSHEET_ID or self.SHEETS_EXPORT_URL)


settings = Settings()
