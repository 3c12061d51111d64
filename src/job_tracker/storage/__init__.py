"""File storage buckets."""

from job_tracker.storage.buckets import Bucket, BucketClient, MockStorage, StoredObject

__all__ = ["Bucket", "BucketClient", "MockStorage", "StoredObject"]
