"""HTTP client for the user OAuth authorize and token endpoints."""

import urllib.parse
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
import orjson
from pydantic import ValidationError
from structlog import get_logger

from lark_cli.auth.oauth.constants import (
    AUTHORIZE_PATH,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    TOKEN_PATH,
    USER_OAUTH_REDIRECT_URL,
)
from lark_cli.auth.oauth.models import OAuthTokenResponse
from lark_cli.config import normalize_base_url
from lark_cli.exceptions import (
    TokenExchangeError,
    TokenRefreshError,
    TokenRefreshRejectedError,
)


if TYPE_CHECKING:
    from lark_cli.state import AppState


logger = get_logger(__name__)


@dataclass
class OAuthConfig:
    """App credentials and endpoints for user OAuth."""

    base_url: str
    app_id: str
    app_secret: str
    redirect_uri: str = USER_OAUTH_REDIRECT_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    @classmethod
    def from_state(cls, state: "AppState") -> "OAuthConfig":
        """OAuth settings for the app and base URL of the current invocation."""
        return cls(
            base_url=state.base_url,
            app_id=state.config.app_id.strip(),
            app_secret=state.config.app_secret.strip(),
        )

    @property
    def authorize_url(self) -> str:
        return normalize_base_url(self.base_url) + AUTHORIZE_PATH

    @property
    def token_url(self) -> str:
        return normalize_base_url(self.base_url) + TOKEN_PATH


def _truncate_error_text(response_text: str) -> str:
    """Truncate response text for compact error logging.

    Args:
        response_text: Full response text

    Returns:
        Truncated text suitable for logging

    """
    if len(response_text) > 200:
        return f"{response_text[:100]}...{response_text[-50:]}"
    if len(response_text) > 100:
        return f"{response_text[:100]}..."
    return response_text


def _log_http_error_compact(operation: str, response: httpx.Response) -> None:
    logger.warning(
        "http_operation_failed_compact",
        operation=operation,
        status_code=response.status_code,
        response_preview=_truncate_error_text(response.text),
    )


def _parse_token_response(response: httpx.Response) -> OAuthTokenResponse | None:
    """Parse a token endpoint body, or None if it is not a JSON object."""
    try:
        data = orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return OAuthTokenResponse.model_validate(data)
    except ValidationError:
        return None


class UserOAuthClient:
    """Client for the user OAuth authorize URL and token endpoint.

    Supports connection pooling by reusing an injected httpx.AsyncClient;
    otherwise a client is created per request.
    """

    def __init__(
        self,
        config: OAuthConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._shared_client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._shared_client is not None:
            return self._shared_client
        return httpx.AsyncClient(timeout=self.config.request_timeout)

    async def _post_json(self, payload: dict[str, Any]) -> httpx.Response:
        client = self._get_client()
        use_context = self._shared_client is None

        async def do_request() -> httpx.Response:
            return await client.post(
                self.config.token_url,
                content=orjson.dumps(payload),
                headers={"Content-Type": "application/json; charset=utf-8"},
                timeout=self.config.request_timeout,
            )

        if use_context:
            async with client:
                return await do_request()
        return await do_request()

    def build_authorize_url(
        self,
        state: str,
        scope: str,
        *,
        prompt: str = "",
        include_granted_scopes: bool = False,
    ) -> str:
        """Build the authorization URL the browser is sent to.

        Args:
            state: Opaque nonce echoed back on the callback
            scope: Space-separated scopes to request
            prompt: ``consent`` to force the consent screen
            include_granted_scopes: Ask for incremental authorization

        Returns:
            Authorization URL

        """
        params = {
            "client_id": self.config.app_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "state": state,
        }
        if scope.strip():
            params["scope"] = scope
        if prompt:
            params["prompt"] = prompt
        if include_granted_scopes:
            params["include_granted_scopes"] = "true"
        query_string = urllib.parse.urlencode(params, quote_via=urllib.parse.quote)
        return f"{self.config.authorize_url}?{query_string}"

    async def exchange_code(self, code: str) -> OAuthTokenResponse:
        """Exchange an authorization code for tokens.

        Raises:
            TokenExchangeError: If the endpoint rejects the code or the
                response lacks an access token

        """
        payload = {
            "grant_type": "authorization_code",
            "client_id": self.config.app_id,
            "client_secret": self.config.app_secret,
            "code": code,
            "redirect_uri": self.config.redirect_uri,
        }
        try:
            response = await self._post_json(payload)
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"token exchange failed: {e}") from e

        if not response.is_success:
            _log_http_error_compact("Token exchange", response)
            raise TokenExchangeError(
                f"token exchange failed: {response.text.strip()}",
                status_code=response.status_code,
                response_text=response.text,
            )
        parsed = _parse_token_response(response)
        if parsed is None:
            raise TokenExchangeError(
                "token exchange failed: invalid response body",
                status_code=response.status_code,
                response_text=response.text,
            )
        if parsed.error:
            raise TokenExchangeError(
                f"token exchange failed: {parsed.error_description or parsed.error}",
                status_code=response.status_code,
                response_text=response.text,
            )
        if not parsed.access_token:
            raise TokenExchangeError("token exchange failed: missing access_token")

        logger.debug(
            "oauth_code_exchanged", scope=parsed.scope, expires_in=parsed.expires_in
        )
        return parsed

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokenResponse:
        """Exchange a refresh token for a new token pair.

        Raises:
            TokenRefreshRejectedError: If the provider rejects the request
            TokenRefreshError: On transport failure or a malformed response

        """
        if not refresh_token:
            raise TokenRefreshError("refresh token is required")
        payload = {
            "grant_type": "refresh_token",
            "client_id": self.config.app_id,
            "client_secret": self.config.app_secret,
            "refresh_token": refresh_token,
        }
        try:
            response = await self._post_json(payload)
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"refresh access token failed: {e}") from e

        parsed = _parse_token_response(response)
        if not response.is_success:
            _log_http_error_compact("Token refresh", response)
            body = response.text.strip()
            if parsed is None:
                raise TokenRefreshRejectedError(0, body)
            raise TokenRefreshRejectedError(parsed.code, parsed.provider_message(body))
        if parsed is None:
            raise TokenRefreshError(
                "refresh access token failed: invalid response body"
            )
        if parsed.code != 0 or parsed.error:
            raise TokenRefreshRejectedError(parsed.code, parsed.provider_message())
        if not parsed.access_token:
            raise TokenRefreshError("refresh access token failed: missing access_token")
        if parsed.expires_in <= 0:
            raise TokenRefreshError("refresh access token failed: invalid expires_in")

        logger.debug("oauth_token_refreshed", expires_in=parsed.expires_in)
        return parsed
