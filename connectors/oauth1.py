"""
SocialBridge OAuth 1.0a Signer
==============================
Per-request HMAC-SHA1 signatures for the X v1.1 upload and v2 tweet APIs.

Both X endpoints we call take user-context OAuth 1.0a instead of a bearer
token. Every sign() call uses a fresh nonce and timestamp, so the same
logical request signed twice yields two different (valid) headers.
"""

import os
import hmac
import time
import base64
import hashlib
import secrets
from typing import Dict, Optional
from urllib.parse import quote, urlsplit, urlunsplit, parse_qsl

from .errors import CredentialsMissingError

# env var -> constructor argument
X_CREDENTIAL_ENV = {
    "X_API_KEY": "consumer_key",
    "X_API_SECRET": "consumer_secret",
    "X_ACCESS_TOKEN": "token",
    "X_ACCESS_TOKEN_SECRET": "token_secret",
}


def _enc(value: str) -> str:
    """RFC 3986 percent-encoding as required by OAuth 1.0a."""
    return quote(str(value), safe="~")


class OAuth1Signer:
    """Signs requests with a fixed consumer key/secret and access token/secret."""

    signature_method = "HMAC-SHA1"

    def __init__(self, consumer_key: str, consumer_secret: str, token: str, token_secret: str):
        missing = [
            name for name, value in (
                ("consumer_key", consumer_key),
                ("consumer_secret", consumer_secret),
                ("token", token),
                ("token_secret", token_secret),
            ) if not value
        ]
        if missing:
            raise CredentialsMissingError(
                "X API credentials are not available in environment variables.",
                details={"missing": missing},
            )
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.token = token
        self.token_secret = token_secret

    @classmethod
    def from_env(cls) -> "OAuth1Signer":
        """Build a signer from X_API_KEY/X_API_SECRET/X_ACCESS_TOKEN/X_ACCESS_TOKEN_SECRET."""
        kwargs = {arg: os.environ.get(env, "") for env, arg in X_CREDENTIAL_ENV.items()}
        return cls(**kwargs)

    def sign(self, method: str, url: str, params: Optional[Dict[str, str]] = None) -> str:
        """
        Return an Authorization header value for one request.

        Args:
            method: HTTP method.
            url: Full request URL; its query string is part of the signature.
            params: Form-encoded body parameters, if any. Multipart and JSON
                bodies are never signed.
        """
        return self.build_header(
            method,
            url,
            nonce=secrets.token_hex(16),
            timestamp=str(int(time.time())),
            params=params,
        )

    def build_header(
        self,
        method: str,
        url: str,
        nonce: str,
        timestamp: str,
        params: Optional[Dict[str, str]] = None,
    ) -> str:
        oauth_params = {
            "oauth_consumer_key": self.consumer_key,
            "oauth_nonce": nonce,
            "oauth_signature_method": self.signature_method,
            "oauth_timestamp": timestamp,
            "oauth_token": self.token,
            "oauth_version": "1.0",
        }
        oauth_params["oauth_signature"] = self._signature(method, url, oauth_params, params or {})

        return "OAuth " + ", ".join(
            f'{_enc(k)}="{_enc(v)}"' for k, v in sorted(oauth_params.items())
        )

    def _signature(self, method: str, url: str, oauth_params: Dict[str, str], params: Dict[str, str]) -> str:
        parts = urlsplit(url)
        base_url = urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, "", ""))

        pairs = list(parse_qsl(parts.query, keep_blank_values=True))
        pairs.extend(params.items())
        pairs.extend(oauth_params.items())
        param_string = "&".join(
            f"{k}={v}" for k, v in sorted((_enc(k), _enc(v)) for k, v in pairs)
        )

        base_string = "&".join([method.upper(), _enc(base_url), _enc(param_string)])
        signing_key = f"{_enc(self.consumer_secret)}&{_enc(self.token_secret)}"

        digest = hmac.new(signing_key.encode(), base_string.encode(), hashlib.sha1).digest()
        return base64.b64encode(digest).decode()
