from termsarchive.repositories.base import RecordRepository
from termsarchive.repositories.git import GitRepository

__all__ = ["GitRepository", "RecordRepository"]
