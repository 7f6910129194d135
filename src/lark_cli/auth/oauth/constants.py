"""Fixed OAuth endpoints and local callback settings."""

USER_OAUTH_LISTEN_HOST = "localhost"
USER_OAUTH_LISTEN_PORT = 17653
USER_OAUTH_CALLBACK_PATH = "/oauth/callback"
USER_OAUTH_REDIRECT_URL = (
    f"http://{USER_OAUTH_LISTEN_HOST}:{USER_OAUTH_LISTEN_PORT}"
    f"{USER_OAUTH_CALLBACK_PATH}"
)

AUTHORIZE_PATH = "/open-apis/authen/v1/authorize"
TOKEN_PATH = "/open-apis/authen/v2/oauth/token"

DEFAULT_LOGIN_TIMEOUT_SECONDS = 120.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
STATE_NONCE_BYTES = 16
