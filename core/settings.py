from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL as SQLAlchemyURL

# Load .env file automatically
load_dotenv()


class ConfigurationError(Exception):
    """Raised when the environment does not describe a usable configuration."""


# TypeORM connection types that SQLAlchemy spells differently
DIALECT_ALIASES = {"postgres": "postgresql", "mariadb": "mysql"}


class StripeOptions(BaseModel):
    api_key: str = ""
    webhook_secret: str = ""
    payment_description: str | None = None
    capture: bool = False
    automatic_payment_methods: bool = False


class DatabaseSettings(BaseSettings):
    """Connection settings read from DB_* environment variables."""

    CONNECTION_TYPE: str = "postgresql"
    URL: str | None = None
    USERNAME: str | None = None
    PASSWORD: str | None = None
    HOST: str = "localhost"
    PORT: int | None = None
    DATABASE: str | None = None
    MIGRATIONS_PATH: str = "alembic"
    ENTITIES_PATH: str = "db.models"

    model_config = SettingsConfigDict(
        env_prefix="DB_", env_file=".env", case_sensitive=True, extra="ignore"
    )

    @property
    def dialect(self) -> str:
        """SQLAlchemy dialect name for CONNECTION_TYPE."""
        return DIALECT_ALIASES.get(self.CONNECTION_TYPE, self.CONNECTION_TYPE)

    @property
    def sqlalchemy_url(self) -> str | SQLAlchemyURL:
        """Explicit DB_URL wins, otherwise the URL is built from its parts."""
        if self.URL:
            return self.URL
        if not self.DATABASE:
            raise ConfigurationError(
                "DB_URL or DB_DATABASE must be set; create .env or export the variable"
            )
        if self.dialect == "sqlite":
            return SQLAlchemyURL.create("sqlite", database=self.DATABASE)
        return SQLAlchemyURL.create(
            self.dialect,
            username=self.USERNAME,
            password=self.PASSWORD,
            host=self.HOST,
            port=self.PORT,
            database=self.DATABASE,
        )

    @property
    def url_string(self) -> str:
        url = self.sqlalchemy_url
        return url if isinstance(url, str) else url.render_as_string(hide_password=False)

    @property
    def is_sqlite(self) -> bool:
        return self.url_string.startswith("sqlite")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App settings
    APP_NAME: str = "Storefront Commerce"
    DEBUG: bool = False
    ENVIRONMENT: Literal["development", "test", "production"] = "development"

    # Stripe
    STRIPE_API_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_PAYMENT_DESCRIPTION: str | None = None
    STRIPE_CAPTURE: bool = False
    STRIPE_AUTOMATIC_PAYMENT_METHODS: bool = False

    # Metrics from one-shot jobs are pushed here; unset means not pushed
    PROMETHEUS_PUSHGATEWAY_URL: str | None = None

    # Database
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    def stripe_options(self) -> StripeOptions:
        return StripeOptions(
            api_key=self.STRIPE_API_KEY,
            webhook_secret=self.STRIPE_WEBHOOK_SECRET,
            payment_description=self.STRIPE_PAYMENT_DESCRIPTION,
            capture=self.STRIPE_CAPTURE,
            automatic_payment_methods=self.STRIPE_AUTOMATIC_PAYMENT_METHODS,
        )
