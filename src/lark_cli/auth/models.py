"""User token record shared by every storage backend."""

from pydantic import BaseModel, Field


class UserToken(BaseModel):
    """User access token record for one account."""

    access_token: str = Field(default="", description="User access token")
    refresh_token: str = Field(default="", description="Refresh token")
    expires_at: int = Field(default=0, description="Access token expiry, epoch seconds")
    scope: str = Field(default="", description="Granted scope string")

    def is_empty(self) -> bool:
        return not (
            self.access_token or self.refresh_token or self.expires_at or self.scope
        )

    def is_valid(self, now: int) -> bool:
        """True when the access token can be used as-is at ``now``."""
        return bool(self.access_token) and self.expires_at > now
