from job_tracker.config.settings import BucketConfig, Seed, Settings, settings

__all__ = ["BucketConfig", "Seed", "Settings", "settings"]
