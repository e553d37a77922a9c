"""Public SDK surface for bulkfetch.

This module provides a stable import path for library users.
It re-exports the run entry points, typed models, and checkpoint stores.
"""

from __future__ import annotations

from core.config import FetchConfig
from core.types import FetchRunResult, JobStatus, PipelineReport, Record
from export_api.http_client import BulkDataClient
from ingest.checkpoint_store import (
    InMemoryTransactionTimeStore,
    LocalFileTransactionTimeStore,
    S3TransactionTimeStore,
    TransactionTimeStore,
    build_transaction_time_store,
)
from ingest.pipeline import BulkFetchRunner, load_latest_transaction_time, run_bulk_fetch
from ingest.record_pipeline import Processor, RecordPipeline, Sink

__all__ = [
    "BulkDataClient",
    "BulkFetchRunner",
    "FetchConfig",
    "FetchRunResult",
    "InMemoryTransactionTimeStore",
    "JobStatus",
    "LocalFileTransactionTimeStore",
    "PipelineReport",
    "Processor",
    "Record",
    "RecordPipeline",
    "S3TransactionTimeStore",
    "Sink",
    "TransactionTimeStore",
    "build_transaction_time_store",
    "load_latest_transaction_time",
    "run_bulk_fetch",
]
