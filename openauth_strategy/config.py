"""
Strategy configuration defaults. Every value can be overridden by the
matching OpenAuthStrategy constructor argument.
"""
import os

# OpenAuth issuer: where we redirect for login and exchange codes
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:3000").rstrip("/")

# Our client_id (must be known to the issuer)
CLIENT_ID = os.environ.get("OAUTH_CLIENT_ID", "test-client")

# Callback URL where the issuer redirects after authorization
REDIRECT_URI = os.environ.get("OAUTH_REDIRECT_URI", "http://127.0.0.1:8000/callback")

# Identity provider configured on the issuer (e.g. "github"); unset sends the user to the issuer's picker
PROVIDER = os.environ.get("OAUTH_PROVIDER", "").strip() or None

# Cookie holding pending state/verifier pairs between /login and /callback
COOKIE_NAME = os.environ.get("OAUTH_COOKIE_NAME", "oauth2")

# Pending flows become unusable once the browser drops the cookie (5 minutes)
COOKIE_MAX_AGE = int(os.environ.get("OAUTH_COOKIE_MAX_AGE", "300"))

# Timeout (seconds) for calls to the issuer's token and JWKS endpoints
HTTP_TIMEOUT = float(os.environ.get("OAUTH_HTTP_TIMEOUT", "10.0"))
