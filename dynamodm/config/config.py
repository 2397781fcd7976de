import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Load environment variables from .env file if it exists
load_dotenv()


class RetryOptions(BaseModel):
    """Backoff policy for batch reads that leave keys unprocessed."""

    exponent: float = Field(
        default=2.0,
        gt=1.0,
        description="Base of the exponential backoff delay (in milliseconds)"
    )

    jitter_fraction: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="Fraction of each delay that is randomised: 0 = no jitter, 1 = full jitter"
    )

    max_retries: int = Field(
        default=5,
        ge=0,
        description="Maximum number of retries before the request fails"
    )

    model_config = ConfigDict(extra='forbid')


class DynamoDMConfig(BaseModel):
    """Configuration for DynamoDB connection and table coordination."""

    aws_access_key_id: Optional[str] = Field(
        default_factory=lambda: os.getenv("AWS_ACCESS_KEY_ID"),
        description="AWS access key ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("AWS_SECRET_ACCESS_KEY"),
        description="AWS secret access key"
    )

    region_name: str = Field(
        default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"),
        description="AWS region name"
    )

    # DynamoDB specific settings
    endpoint_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("DYNAMODB_ENDPOINT_URL"),
        description="DynamoDB endpoint URL (for local development)"
    )

    # Table configuration
    table_prefix: str = Field(
        default_factory=lambda: os.getenv("DYNAMODM_TABLE_PREFIX", ""),
        description="Prefix to add to all table names"
    )

    # Connection settings
    max_pool_connections: int = Field(
        default=50,
        description="Maximum number of connections in the connection pool"
    )

    retries: int = Field(
        default=3,
        description="Number of transport-level retry attempts for failed requests"
    )

    timeout_seconds: float = Field(
        default=30.0,
        description="Request timeout in seconds"
    )

    # Table coordination settings
    poll_interval_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Fixed interval between describe-table polls while a table or index converges"
    )

    retry: RetryOptions = Field(
        default_factory=RetryOptions,
        description="Backoff policy for unprocessed batch-read keys"
    )

    # Logging settings
    enable_debug_logging: bool = Field(
        default_factory=lambda: os.getenv("DYNAMODM_DEBUG_LOGGING", "false").lower() == "true",
        description="Enable debug logging for DynamoDB operations"
    )

    @field_validator('region_name')
    @classmethod
    def validate_region(cls, v):
        """Validate AWS region name."""
        if not v:
            raise ValueError("AWS region name is required")
        return v

    def get_table_name(self, base_name: str) -> str:
        """Get the full table name with prefix.

        Args:
            base_name: Base table name

        Returns:
            Full table name with prefix
        """
        if self.table_prefix:
            return f"{self.table_prefix}_{base_name}"
        return base_name

    def configure_logging(self) -> None:
        """Apply the debug logging setting to the package logger."""
        if self.enable_debug_logging:
            logging.getLogger("dynamodm").setLevel(logging.DEBUG)

    @classmethod
    def from_env(cls) -> 'DynamoDMConfig':
        """Create configuration from environment variables.

        Returns:
            DynamoDMConfig instance
        """
        return cls()

    @classmethod
    def for_local_development(cls) -> 'DynamoDMConfig':
        """Create configuration for local DynamoDB development.

        Returns:
            DynamoDMConfig instance configured for local development
        """
        return cls(
            aws_access_key_id="local",
            aws_secret_access_key="local",
            region_name="us-east-1",
            endpoint_url="http://localhost:8000",
            enable_debug_logging=True
        )

    model_config = ConfigDict(
        validate_assignment=True,
        use_enum_values=True
    )
