"""S3-backed storage and in-memory locking for resumable tus uploads."""

__version__ = "0.1.0"

__all__ = ["errors", "fileinfo", "memorylocker", "part_producer", "s3api", "s3base", "s3store"]