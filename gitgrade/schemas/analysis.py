import re

from pydantic import BaseModel, field_validator

# GitHub login grammar: alphanumerics and single inner hyphens, max 39 characters
GITHUB_USERNAME_RE = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9]|-(?=[a-zA-Z0-9])){0,38}$")


class AnalyzeRequest(BaseModel):
    username: str

    @field_validator("username")
    @classmethod
    def valid_github_username(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("GitHub username is required.")
        if len(v) > 39:
            raise ValueError("GitHub username cannot exceed 39 characters.")
        if not GITHUB_USERNAME_RE.match(v):
            raise ValueError("Invalid GitHub username format.")
        return v.lower()
