# config.py
from functools import lru_cache
from typing import Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from errors import ConfigError

load_dotenv()

MIB = 1024 * 1024
# Graph requires upload-session chunks to be multiples of 320 KiB
CHUNK_ALIGNMENT = 320 * 1024

REQUIRED_VARIABLES = ("TENANT_ID", "CLIENT_ID", "CLIENT_SECRET", "ONEDRIVE_USER_UPN", "ROOT_FOLDER")
CREDENTIAL_VARIABLES = ("TENANT_ID", "CLIENT_ID", "CLIENT_SECRET")


class Credentials(BaseModel):
    """Service-principal triple used for the client-credentials grant."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    client_id: str
    client_secret: SecretStr


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    TENANT_ID: str = ""
    CLIENT_ID: str = ""
    CLIENT_SECRET: SecretStr = SecretStr("")
    ONEDRIVE_USER_UPN: str = ""
    ROOT_FOLDER: str = ""

    GRAPH_BASE_URL: str = "https://graph.microsoft.com/v1.0"
    AUTHORITY_HOST: str = "https://login.microsoftonline.com"
    GRAPH_SCOPE: str = "https://graph.microsoft.com/.default"

    # <= DIRECT_UPLOAD_LIMIT goes as one PUT, anything larger through an upload session
    DIRECT_UPLOAD_LIMIT: int = 4 * MIB
    CHUNK_SIZE: int = 5 * MIB
    ENSURE_FOLDERS: bool = True

    # seconds; REQUEST_TIMEOUT caps each call, OPERATION_TIMEOUT the whole upload
    REQUEST_TIMEOUT: float = 30.0
    OPERATION_TIMEOUT: float = 120.0

    DEFAULT_OWNER: str = "guest"
    DEFAULT_SERIAL: str = "GUEST-0000"

    CORS_ALLOW_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"
    JSON_LOGGING: bool = False
    PORT: int = 8000

    @field_validator("CHUNK_SIZE")
    @classmethod
    def _chunk_size_aligned(cls, value: int) -> int:
        if value <= 0 or value % CHUNK_ALIGNMENT:
            raise ValueError(f"CHUNK_SIZE must be a positive multiple of {CHUNK_ALIGNMENT} bytes")
        return value

    @field_validator("DIRECT_UPLOAD_LIMIT")
    @classmethod
    def _limit_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("DIRECT_UPLOAD_LIMIT must be positive")
        return value

    def _value(self, name: str) -> str:
        value = getattr(self, name)
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        return str(value or "").strip()

    def env_present(self) -> Dict[str, bool]:
        """Presence of each required variable. Booleans only, never values."""
        return {name: bool(self._value(name)) for name in REQUIRED_VARIABLES}

    def missing(self, names=REQUIRED_VARIABLES) -> List[str]:
        return [name for name in names if not self._value(name)]

    def require(self, names=REQUIRED_VARIABLES) -> None:
        missing = self.missing(names)
        if missing:
            raise ConfigError(missing)

    @property
    def credentials(self) -> Credentials:
        self.require(CREDENTIAL_VARIABLES)
        return Credentials(
            tenant_id=self._value("TENANT_ID"),
            client_id=self._value("CLIENT_ID"),
            client_secret=self.CLIENT_SECRET,
        )

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
