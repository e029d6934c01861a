"""Normalized GitHub facts fed to the AI prompt."""
from typing import Any

from pydantic import BaseModel, Field


class RepositorySnapshot(BaseModel):
    name: str
    description: str | None = None
    language: str | None = None
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0
    created_at: str | None = None
    updated_at: str | None = None
    pushed_at: str | None = None
    topics: list[str] = Field(default_factory=list)
    license: str | None = None
    is_fork: bool = False
    readme: str | None = None  # first 3000 characters, top ranked repos only


class ProfileSnapshot(BaseModel):
    username: str
    name: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    location: str | None = None
    blog: str | None = None
    company: str | None = None
    twitter_username: str | None = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0
    created_at: str | None = None
    profile_readme: str | None = None
    repositories: list[RepositorySnapshot] = Field(default_factory=list)
    events: list[dict[str, Any]] = Field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        """Subset persisted on the analysis before the AI call."""
        return {
            "user": {
                "name": self.name,
                "bio": self.bio,
                "location": self.location,
                "followers": self.followers,
                "following": self.following,
                "public_repos": self.public_repos,
            },
            "has_profile_readme": bool(self.profile_readme),
            "top_repos_count": len(self.repositories),
        }
