"""Identity lifecycle propagation to downstream systems."""
from .channels import HttpSyncClient, RedisStreamPublisher
from .pipeline import SyncPipeline, create_sync_pipeline
from .task import SyncAction, SyncTask

__all__ = [
    "HttpSyncClient",
    "RedisStreamPublisher",
    "SyncAction",
    "SyncPipeline",
    "SyncTask",
    "create_sync_pipeline",
]
