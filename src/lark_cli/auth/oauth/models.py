"""OAuth token endpoint payloads."""

from pydantic import BaseModel, ConfigDict, Field


class OAuthTokenResponse(BaseModel):
    """Token endpoint response for both code exchange and refresh."""

    model_config = ConfigDict(extra="ignore")

    code: int = Field(default=0, description="OpenAPI status code; 0 on success")
    msg: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expires_in: int = Field(default=0, description="Access token TTL in seconds")
    refresh_token_expires_in: int = 0
    token_type: str = ""
    scope: str = ""
    error: str = ""
    error_description: str = ""

    def provider_message(self, fallback: str = "") -> str:
        """Most specific error text the provider returned."""
        return self.error_description or self.error or self.msg or fallback
