from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

import boto3  # type: ignore[import]

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DynamoConfig:
    """Immutable configuration for DynamoDB access.

    Attributes
    ----------
    table_name: str
        The DynamoDB table holding the documents (hash key ``pk``).
    region: Optional[str]
        The AWS region; if omitted, will fall back to environment or SDK defaults.
    endpoint_url: Optional[str]
        Alternate endpoint, eg, DynamoDB Local at http://localhost:8000.
    consistent_read: bool
        Issue strongly consistent reads instead of eventually consistent ones.
    """

    table_name: str
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    consistent_read: bool = False

    @classmethod
    def from_env(cls, table_name: Optional[str] = None) -> "DynamoConfig":
        """Build a config from ``DOCSTORE_*`` and AWS environment variables."""
        name = table_name or os.getenv("DOCSTORE_TABLE")
        if not name:
            raise ValueError("DynamoDB table name is required (set DOCSTORE_TABLE)")
        consistent = os.getenv("DOCSTORE_CONSISTENT_READ", "").strip().lower() in _TRUTHY
        return cls(
            table_name=name,
            region=os.getenv("DOCSTORE_REGION"),
            endpoint_url=os.getenv("DOCSTORE_ENDPOINT_URL"),
            consistent_read=consistent,
        )


@dataclass(frozen=True)
class RepositoryConfig:
    """Retry bounds and counter defaults for :class:`DocumentRepository`."""

    store_attempts: int = 10
    read_retries: int = 9
    remove_attempts: int = 9
    default_counter_value: int = 0

    def __post_init__(self) -> None:
        if self.store_attempts < 1:
            raise ValueError("store_attempts must be at least 1")
        if self.read_retries < 0 or self.remove_attempts < 1:
            raise ValueError("read_retries must be >= 0 and remove_attempts >= 1")


def _resolve_region(explicit_region: Optional[str]) -> Optional[str]:
    # Prefer explicit, then env, otherwise let boto3 resolve (eg, IAM role default)
    return explicit_region or os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")


def get_dynamo_table(config: DynamoConfig):
    """Create and return a DynamoDB Table resource.

    Notes
    -----
    Creating the resource sets up connection pools, so build it once per
    process and hand it to every backend that needs it.
    """
    region = _resolve_region(config.region)
    resource = boto3.resource("dynamodb", region_name=region, endpoint_url=config.endpoint_url)
    return resource.Table(config.table_name)
