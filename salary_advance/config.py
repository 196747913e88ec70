"""
Configuration management using Pydantic Settings.
Reads from environment variables.
"""

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    model_config = ConfigDict(env_file=".env", case_sensitive=False)

    # Money handling
    currency_precision: int = Field(default=2, alias="CURRENCY_PRECISION")

    # Decision notes applied when a manager leaves the note blank
    default_approve_note: str = Field(default="Approved", alias="DEFAULT_APPROVE_NOTE")
    default_reject_note: str = Field(default="Rejected", alias="DEFAULT_REJECT_NOTE")

    # Snowflake Configuration
    snowflake_account: str = Field(default="", alias="SNOWFLAKE_ACCOUNT")
    snowflake_user: str = Field(default="", alias="SNOWFLAKE_USER")
    snowflake_password: str = Field(default="", alias="SNOWFLAKE_PASSWORD")
    snowflake_warehouse: str = Field(default="", alias="SNOWFLAKE_WAREHOUSE")
    snowflake_database: str = Field(default="", alias="SNOWFLAKE_DATABASE")
    snowflake_schema: str = Field(default="", alias="SNOWFLAKE_SCHEMA")
    requests_table: str = Field(default="benefit_requests", alias="REQUESTS_TABLE")
    requesters_table: str = Field(default="requesters", alias="REQUESTERS_TABLE")
    requests_id_sequence: str = Field(
        default="benefit_requests_id_seq", alias="REQUESTS_ID_SEQUENCE"
    )

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Circuit Breaker Configuration
    circuit_breaker_failure_threshold: int = Field(
        default=5, alias="CIRCUIT_BREAKER_FAILURE_THRESHOLD"
    )
    circuit_breaker_timeout: int = Field(default=60, alias="CIRCUIT_BREAKER_TIMEOUT")


# Global settings instance
settings = Settings()
