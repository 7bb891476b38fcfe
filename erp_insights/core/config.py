from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Dashboard users
    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Cache backend (in-memory when unset)
    REDIS_URL: Optional[str] = None

    # ERP gateway
    ERP_LOGIN_URL: str = "https://api.sandbox.sankhya.com.br/login"
    ERP_QUERY_URL: str = (
        "https://api.sandbox.sankhya.com.br/gateway/v1/mge/service.sbr"
        "?serviceName=CRUDServiceProvider.loadRecords&outputType=json"
    )
    ERP_TOKEN: str = ""
    ERP_APPKEY: str = ""
    ERP_USERNAME: str = ""
    ERP_PASSWORD: str = ""
    ERP_LOGIN_TIMEOUT_SECONDS: float = 30.0
    ERP_REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Analysis
    ANALYSIS_CACHE_TTL_SECONDS: int = 30 * 60
    ANALYSIS_DEFAULT_DAYS: int = 30
    CLIENT_SEARCH_CACHE_TTL_SECONDS: int = 5 * 60

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def erp_login_headers(self) -> dict:
        return {
            "token": self.ERP_TOKEN,
            "appkey": self.ERP_APPKEY,
            "username": self.ERP_USERNAME,
            "password": self.ERP_PASSWORD,
        }


# Create a single instance of the settings to use everywhere
settings = Settings()
