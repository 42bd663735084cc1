"""Oura API v2 fetch engine.

Modules:
    records    — Typed API records and the paginated response envelope
    quality    — Score / HRV / resting-HR quality bands
    errors     — OuraAPIError taxonomy and HTTP status classification
    auth       — Token sources (direct, secret-store backed, OAuth2 stub)
    client     — Single-page authenticated GET with response classification
    retry      — Exponential backoff with jitter for transient failures
    pagination — Cursor-following page drainer
"""

from src.oura.auth import (
    SecretStoreTokenSource,
    StaticTokenSource,
    TokenSelector,
    TokenSource,
)
from src.oura.client import DateRange, Endpoint, OuraClient, PageRequest
from src.oura.errors import ErrorKind, NotConfiguredError, OuraAPIError
from src.oura.pagination import PageDrainer
from src.oura.records import DailyReadiness, DailySleep, HeartRateSample, Page, SleepPeriod
from src.oura.retry import RetryingFetcher, RetryPolicy

__all__ = [
    "TokenSource",
    "StaticTokenSource",
    "SecretStoreTokenSource",
    "TokenSelector",
    "OuraClient",
    "Endpoint",
    "DateRange",
    "PageRequest",
    "Page",
    "ErrorKind",
    "OuraAPIError",
    "NotConfiguredError",
    "RetryPolicy",
    "RetryingFetcher",
    "PageDrainer",
    "DailyReadiness",
    "DailySleep",
    "SleepPeriod",
    "HeartRateSample",
]
