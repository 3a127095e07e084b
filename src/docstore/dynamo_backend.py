from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from boto3.dynamodb.types import TypeDeserializer  # type: ignore[import]
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import]

from .client import DynamoConfig, get_dynamo_table
from .exceptions import BackendUnavailableError
from .backend import (
    STATUS_CAS_MISMATCH,
    STATUS_KEY_EXISTS,
    STATUS_NON_NUMERIC,
    STATUS_NOT_FOUND,
    OperationResult,
    StoreMode,
    new_cas_token,
)

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
BATCH_GET_LIMIT = 100
MAX_UNPROCESSED_ROUNDS = 10
MAX_COUNTER_ROUNDS = 5


def _error_code(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", "ClientError"))
    return type(exc).__name__


class DynamoBackend:
    """Key-value backend over a DynamoDB table.

    This backend assumes the following table schema exists:
    - Primary: pk (HASH)

    Each key is one item: ``payload`` holds the JSON text, ``cas`` holds the
    concurrency token re-issued on every write and ``counter`` holds atomic
    counter values. Write modes and token checks are expressed as condition
    expressions so DynamoDB enforces them server-side.
    """

    def __init__(self, table, consistent_read: bool = False) -> None:
        self._table = table
        self._consistent_read = consistent_read
        self._deserializer = TypeDeserializer()

    # ---------- reads ----------
    def get(self, key: str) -> OperationResult:
        try:
            res = self._table.get_item(Key={"pk": key}, ConsistentRead=self._consistent_read)
        except (BotoCoreError, ClientError) as exc:
            return OperationResult.failed(_error_code(exc), f"Failed to get item: {exc}", exc)
        item = res.get("Item")
        if not item:
            return OperationResult.failed(STATUS_NOT_FOUND, f"Key {key} not found")
        return OperationResult.ok(cas=int(item.get("cas", 0)), value=self._item_value(item))

    def exists(self, key: str) -> bool:
        try:
            res = self._table.get_item(
                Key={"pk": key},
                ProjectionExpression="#pk",
                ExpressionAttributeNames={"#pk": "pk"},
                ConsistentRead=self._consistent_read,
            )
        except (BotoCoreError, ClientError) as exc:
            raise BackendUnavailableError(
                key, _error_code(exc), f"Existence check failed for {key}: {exc}"
            ) from exc
        return bool(res.get("Item"))

    def get_many(self, keys: Iterable[str]) -> Dict[str, str]:
        """Fetch many payloads with BatchGetItem, 100 keys per request."""
        unique: List[str] = list(dict.fromkeys(k for k in keys if k))
        docs: Dict[str, str] = {}
        client = self._table.meta.client
        for start in range(0, len(unique), BATCH_GET_LIMIT):
            chunk = unique[start : start + BATCH_GET_LIMIT]
            request: Optional[Dict[str, Any]] = {
                self._table.name: {
                    "Keys": [{"pk": {"S": k}} for k in chunk],
                    "ConsistentRead": self._consistent_read,
                }
            }
            rounds = 0
            while request and rounds < MAX_UNPROCESSED_ROUNDS:
                rounds += 1
                try:
                    page = client.batch_get_item(RequestItems=request)
                except (BotoCoreError, ClientError) as exc:
                    logger.warning("Batch get failed for %d keys: %s", len(chunk), exc)
                    break
                for raw in page.get("Responses", {}).get(self._table.name, []):
                    item = {k: self._deserializer.deserialize(v) for k, v in raw.items()}
                    value = self._item_value(item)
                    if value is not None:
                        docs[str(item["pk"])] = value
                request = page.get("UnprocessedKeys") or None
            if request:
                logger.warning("Batch get left unprocessed keys after %d rounds", rounds)
        return docs

    # ---------- writes ----------
    def store(self, mode: StoreMode, key: str, payload: str) -> OperationResult:
        params: Dict[str, Any] = {}
        if mode is StoreMode.ADD:
            params["ConditionExpression"] = "attribute_not_exists(#pk)"
            params["ExpressionAttributeNames"] = {"#pk": "pk"}
        elif mode is StoreMode.REPLACE:
            params["ConditionExpression"] = "attribute_exists(#pk)"
            params["ExpressionAttributeNames"] = {"#pk": "pk"}
        conflict = STATUS_KEY_EXISTS if mode is StoreMode.ADD else STATUS_NOT_FOUND
        return self._put(key, payload, params, conflict)

    def store_cas(self, key: str, payload: str, cas: int) -> OperationResult:
        if not cas:
            return self.store(StoreMode.REPLACE, key, payload)
        params: Dict[str, Any] = {
            "ConditionExpression": "#cas = :expected",
            "ExpressionAttributeNames": {"#cas": "cas"},
            "ExpressionAttributeValues": {":expected": cas},
        }
        return self._put(key, payload, params, STATUS_CAS_MISMATCH)

    def remove(self, key: str, cas: int = 0) -> OperationResult:
        params: Dict[str, Any] = {"Key": {"pk": key}}
        if cas:
            params["ConditionExpression"] = "#cas = :expected"
            params["ExpressionAttributeNames"] = {"#cas": "cas"}
            params["ExpressionAttributeValues"] = {":expected": cas}
        try:
            self._table.delete_item(**params)
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                return OperationResult.failed(STATUS_CAS_MISMATCH, f"Stale token for {key}", exc)
            return OperationResult.failed(_error_code(exc), f"Failed to delete item: {exc}", exc)
        except BotoCoreError as exc:
            return OperationResult.failed(_error_code(exc), f"Failed to delete item: {exc}", exc)
        return OperationResult.ok()

    # ---------- counters ----------
    def increment(self, key: str, default: int, delta: int) -> OperationResult:
        return self._adjust(key, default, delta)

    def decrement(self, key: str, default: int, delta: int) -> OperationResult:
        return self._adjust(key, default, -delta)

    def _adjust(self, key: str, default: int, delta: int) -> OperationResult:
        """Apply delta atomically, seeding missing counters with the default.

        Decrements are floored at zero: when the stored value is smaller than
        the decrement, the counter is reset to zero under a condition on the
        value that was too small.
        """
        last: Optional[OperationResult] = None
        for _ in range(MAX_COUNTER_ROUNDS):
            last = self._apply_delta(key, delta)
            if last.success:
                return last
            if last.status_code == STATUS_NOT_FOUND:
                last = self._seed_counter(key, default)
                if last.success or last.status_code != STATUS_KEY_EXISTS:
                    return last
                # Another writer seeded the counter first; apply our delta to theirs.
                continue
            if last.status_code != STATUS_CAS_MISMATCH:
                return last
        return last if last is not None else OperationResult.failed(STATUS_NOT_FOUND)

    def _apply_delta(self, key: str, delta: int) -> OperationResult:
        cas = new_cas_token()
        values: Dict[str, Any] = {":delta": abs(delta), ":cas": cas}
        if delta >= 0:
            expression = "SET #cas = :cas ADD #counter :delta"
            condition = "attribute_exists(#pk) AND attribute_not_exists(#payload)"
        else:
            expression = "SET #cas = :cas, #counter = #counter - :delta"
            condition = "attribute_exists(#pk) AND attribute_not_exists(#payload) AND #counter >= :delta"
        try:
            res = self._table.update_item(
                Key={"pk": key},
                UpdateExpression=expression,
                ConditionExpression=condition,
                ExpressionAttributeNames={
                    "#pk": "pk",
                    "#payload": "payload",
                    "#cas": "cas",
                    "#counter": "counter",
                },
                ExpressionAttributeValues=values,
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as exc:
            if _error_code(exc) != CONDITIONAL_CHECK_FAILED:
                return OperationResult.failed(_error_code(exc), f"Failed to update counter: {exc}", exc)
            return self._explain_counter_conflict(key, delta, exc)
        except BotoCoreError as exc:
            return OperationResult.failed(_error_code(exc), f"Failed to update counter: {exc}", exc)
        attributes = res.get("Attributes", {})
        return OperationResult.ok(cas=cas, value=int(attributes.get("counter", 0)))

    def _explain_counter_conflict(self, key: str, delta: int, exc: ClientError) -> OperationResult:
        """Work out why a counter condition failed: missing key, document or low value."""
        try:
            res = self._table.get_item(
                Key={"pk": key},
                ProjectionExpression="#pk, #payload",
                ExpressionAttributeNames={"#pk": "pk", "#payload": "payload"},
                ConsistentRead=True,
            )
        except (BotoCoreError, ClientError) as lookup_exc:
            return OperationResult.failed(
                _error_code(lookup_exc), f"Failed to inspect counter {key}: {lookup_exc}", lookup_exc
            )
        item = res.get("Item")
        if not item:
            return OperationResult.failed(STATUS_NOT_FOUND, f"Counter {key} not found", exc)
        if "payload" in item:
            return OperationResult.failed(STATUS_NON_NUMERIC, f"Value at {key} is not a counter", exc)
        if delta < 0:
            return self._floor_counter(key, abs(delta))
        return OperationResult.failed(STATUS_CAS_MISMATCH, f"Counter {key} changed", exc)

    def _floor_counter(self, key: str, delta: int) -> OperationResult:
        cas = new_cas_token()
        try:
            self._table.update_item(
                Key={"pk": key},
                UpdateExpression="SET #cas = :cas, #counter = :zero",
                ConditionExpression="#counter < :delta",
                ExpressionAttributeNames={"#cas": "cas", "#counter": "counter"},
                ExpressionAttributeValues={":cas": cas, ":zero": 0, ":delta": delta},
            )
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                return OperationResult.failed(STATUS_CAS_MISMATCH, f"Counter {key} changed", exc)
            return OperationResult.failed(_error_code(exc), f"Failed to floor counter: {exc}", exc)
        except BotoCoreError as exc:
            return OperationResult.failed(_error_code(exc), f"Failed to floor counter: {exc}", exc)
        return OperationResult.ok(cas=cas, value=0)

    def _seed_counter(self, key: str, default: int) -> OperationResult:
        cas = new_cas_token()
        try:
            self._table.put_item(
                Item={"pk": key, "counter": default, "cas": cas},
                ConditionExpression="attribute_not_exists(#pk)",
                ExpressionAttributeNames={"#pk": "pk"},
            )
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                return OperationResult.failed(STATUS_KEY_EXISTS, f"Counter {key} exists", exc)
            return OperationResult.failed(_error_code(exc), f"Failed to seed counter: {exc}", exc)
        except BotoCoreError as exc:
            return OperationResult.failed(_error_code(exc), f"Failed to seed counter: {exc}", exc)
        return OperationResult.ok(cas=cas, value=default)

    # ---------- helpers ----------
    def _put(self, key: str, payload: str, params: Dict[str, Any], conflict: str) -> OperationResult:
        cas = new_cas_token()
        try:
            self._table.put_item(Item={"pk": key, "payload": payload, "cas": cas}, **params)
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                return OperationResult.failed(conflict, f"Conditional write rejected for {key}", exc)
            return OperationResult.failed(_error_code(exc), f"Failed to put item: {exc}", exc)
        except BotoCoreError as exc:
            return OperationResult.failed(_error_code(exc), f"Failed to put item: {exc}", exc)
        return OperationResult.ok(cas=cas)

    @staticmethod
    def _item_value(item: Dict[str, Any]) -> Optional[str]:
        payload = item.get("payload")
        if payload is not None:
            return str(payload)
        counter = item.get("counter")
        if isinstance(counter, (Decimal, int)):
            return str(int(counter))
        return None

    @classmethod
    def from_config(cls, config: DynamoConfig) -> "DynamoBackend":
        """Build a backend with its own Table resource from a config."""
        return cls(get_dynamo_table(config), consistent_read=config.consistent_read)
