from termsarchive.repositories.git.repository import GitRepository

__all__ = ["GitRepository"]
