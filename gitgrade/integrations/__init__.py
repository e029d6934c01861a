from .github import GitHubClient
from .paddle import PaddleClient

__all__ = ["GitHubClient", "PaddleClient"]
