import time
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, List, Optional
import boto3
from botocore.exceptions import ClientError
from config import logger
from utils import AdmissionError, LambdaError

RATE_LIMIT_WINDOW_MS = 60_000
RATE_LIMIT_MAX_REQUESTS = 8


class RateLimitExceededError(AdmissionError):
    def __init__(self, client_key: str, window_ms: int = RATE_LIMIT_WINDOW_MS):
        retry_after = window_ms // 1000
        super().__init__(
            429,
            "Rate limit exceeded.",
            details={"retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )
        self.client_key = client_key


def now_ms() -> int:
    return int(time.time() * 1000)


class RateLimitLedger(ABC):
    """
    Sliding window request log, one timestamp list per client key.

    Subclasses only decide where the timestamps live; the admission rule is
    shared. Reads and writes are not atomic, so concurrent callers sharing a
    key can slightly exceed the cap.
    """

    def __init__(self, window_ms: int = RATE_LIMIT_WINDOW_MS, max_requests: int = RATE_LIMIT_MAX_REQUESTS):
        self.window_ms = window_ms
        self.max_requests = max_requests

    @abstractmethod
    def load(self, key: str) -> List[int]:
        pass

    @abstractmethod
    def store(self, key: str, timestamps: List[int], now: int) -> None:
        pass

    def admit(self, key: str, now: int) -> bool:
        cutoff = now - self.window_ms
        recent = [ts for ts in self.load(key) if ts > cutoff]

        if len(recent) >= self.max_requests:
            # Persist the pruned list so stale entries don't pile up
            self.store(key, recent, now)
            return False

        recent.append(now)
        self.store(key, recent, now)
        return True


class InMemoryRateLimitLedger(RateLimitLedger):
    """Process-local ledger; lost on cold start and not shared between instances."""

    def __init__(self, window_ms: int = RATE_LIMIT_WINDOW_MS, max_requests: int = RATE_LIMIT_MAX_REQUESTS):
        super().__init__(window_ms, max_requests)
        self._requests: Dict[str, List[int]] = {}

    def load(self, key):
        return self._requests.get(key, [])

    def store(self, key, timestamps, now):
        self._requests[key] = timestamps


class DynamoDBRateLimitLedger(RateLimitLedger):
    """Ledger shared by all function instances, one item per client key."""

    def __init__(
        self,
        table,
        ttl_s: int = 3600,
        window_ms: int = RATE_LIMIT_WINDOW_MS,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
    ):
        super().__init__(window_ms, max_requests)
        self.table = table
        self.ttl_s = ttl_s

    def load(self, key):
        try:
            response = self.table.get_item(Key={'client_key': key})
        except ClientError as e:
            logger.error(f"DynamoDB error reading rate limit for {key}: {e}")
            raise LambdaError(500, "Database error during rate limit check.")

        item = response.get('Item', {})
        # DynamoDB hands numbers back as Decimal
        return [int(ts) for ts in item.get('requests', [])]

    def store(self, key, timestamps, now):
        try:
            self.table.put_item(
                Item={
                    'client_key': key,
                    'requests': [Decimal(ts) for ts in timestamps],
                    'expires_at': now // 1000 + self.ttl_s,
                }
            )
        except ClientError as e:
            logger.error(f"DynamoDB error updating rate limit for {key}: {e}")
            raise LambdaError(500, "Database error during rate limit check.")


_ledger: Optional[RateLimitLedger] = None


def get_ledger(table_name: Optional[str] = None, ttl_s: int = 3600) -> RateLimitLedger:
    """
    Return the ledger kept for the lifetime of the execution environment.

    Uses DynamoDB when a table name is configured, otherwise an in-memory map.
    """
    global _ledger
    if _ledger is None:
        if table_name:
            dynamodb = boto3.resource('dynamodb')
            _ledger = DynamoDBRateLimitLedger(dynamodb.Table(table_name), ttl_s=ttl_s)
        else:
            _ledger = InMemoryRateLimitLedger()
    return _ledger


def reset_ledger() -> None:
    global _ledger
    _ledger = None


def check_rate_limit(client_key: str, ledger: RateLimitLedger, now: Optional[int] = None) -> None:
    if now is None:
        now = now_ms()

    if not ledger.admit(client_key, now):
        logger.warning(f"Rate limit exceeded for {client_key}")
        raise RateLimitExceededError(client_key, ledger.window_ms)
