from __future__ import annotations

from typing import Any, Dict

import pytest

import docstore.client as client
from docstore import DynamoConfig, RepositoryConfig


def test_dynamo_config_from_env(monkeypatch: Any) -> None:
    monkeypatch.setenv("DOCSTORE_TABLE", "Documents")
    monkeypatch.setenv("DOCSTORE_ENDPOINT_URL", "http://localhost:8000")
    monkeypatch.setenv("DOCSTORE_CONSISTENT_READ", "true")
    monkeypatch.delenv("DOCSTORE_REGION", raising=False)

    config = DynamoConfig.from_env()

    assert config == DynamoConfig(
        table_name="Documents", endpoint_url="http://localhost:8000", consistent_read=True
    )


def test_dynamo_config_requires_table(monkeypatch: Any) -> None:
    monkeypatch.delenv("DOCSTORE_TABLE", raising=False)
    with pytest.raises(ValueError):
        DynamoConfig.from_env()


def test_get_dynamo_table_resolves_region_from_env(monkeypatch: Any) -> None:
    captured: Dict[str, Any] = {}

    class _Resource:
        def Table(self, name: str) -> str:  # noqa: N802 (match boto3 signature)
            captured["table"] = name
            return name

    def _resource(service: str, **kwargs: Any) -> _Resource:
        captured["service"] = service
        captured.update(kwargs)
        return _Resource()

    monkeypatch.setattr(client.boto3, "resource", _resource)
    monkeypatch.delenv("AWS_REGION", raising=False)
    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-1")

    table = client.get_dynamo_table(DynamoConfig(table_name="Documents"))

    assert table == "Documents"
    assert captured == {
        "service": "dynamodb",
        "region_name": "eu-west-1",
        "endpoint_url": None,
        "table": "Documents",
    }


def test_repository_config_defaults_and_validation() -> None:
    config = RepositoryConfig()
    assert (config.store_attempts, config.read_retries, config.remove_attempts) == (10, 9, 9)
    assert config.default_counter_value == 0
    with pytest.raises(ValueError):
        RepositoryConfig(store_attempts=0)
