"""
Identity provider client for NIT Marketplace (Supabase Auth).

The provider owns OTP delivery, Google OAuth and token issuance. This module
is the only place that talks to it; everything else sees ProviderSession
objects and IdentityError.

A fresh supabase client is built for every call so that no session state is
shared between requests. The PKCE code verifier the provider needs for the
code exchange lives in the signed Flask session (see FlaskSessionStorage).
"""
import os
import time
import logging
from dataclasses import dataclass, asdict, fields

from flask import session
from supabase import ClientOptions, create_client

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """The provider rejected a request or could not be reached."""


@dataclass
class ProviderSession:
    access_token: str
    refresh_token: str | None
    token_type: str
    expires_at: int | None
    user_id: str
    email: str | None

    @classmethod
    def from_auth_session(cls, auth_session):
        """Build from a supabase Session object."""
        expires_at = auth_session.expires_at
        if not expires_at and auth_session.expires_in:
            expires_at = int(time.time()) + int(auth_session.expires_in)
        return cls(
            access_token=auth_session.access_token,
            refresh_token=auth_session.refresh_token,
            token_type=auth_session.token_type or 'bearer',
            expires_at=expires_at,
            user_id=str(auth_session.user.id),
            email=auth_session.user.email,
        )

    @classmethod
    def from_dict(cls, data):
        """Rebuild from what to_dict() stored. Returns None for stale shapes."""
        try:
            return cls(**{f.name: data[f.name] for f in fields(cls)})
        except (KeyError, TypeError):
            return None

    def to_dict(self):
        return asdict(self)

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at <= time.time()


class FlaskSessionStorage:
    """supabase-auth storage backend that keeps items in the Flask session."""

    prefix = 'sb:'

    def get_item(self, key):
        return session.get(self.prefix + key)

    def set_item(self, key, value):
        session[self.prefix + key] = value

    def remove_item(self, key):
        session.pop(self.prefix + key, None)


class IdentityClient:
    def __init__(self, url: str, key: str):
        self.url = url
        self.key = key

    def _client(self):
        options = ClientOptions(
            flow_type='pkce',
            auto_refresh_token=False,
            persist_session=False,
            storage=FlaskSessionStorage(),
        )
        return create_client(self.url, self.key, options=options)

    @staticmethod
    def _session_from_response(response) -> ProviderSession:
        if not response or not response.session:
            raise IdentityError("The identity provider did not return a session")
        return ProviderSession.from_auth_session(response.session)

    def exchange_code(self, code: str) -> ProviderSession:
        """Trade an authorization code for a session."""
        try:
            response = self._client().auth.exchange_code_for_session({'auth_code': code})
        except Exception as e:
            raise IdentityError(str(e) or "Code exchange failed") from e
        return self._session_from_response(response)

    def set_session(self, access_token: str, refresh_token: str = None,
                    expires_in: int = None, token_type: str = 'bearer') -> ProviderSession:
        """
        Establish a session straight from implicit-flow token material.

        With a refresh token the provider issues a full session. Without one
        the access token is only validated, and the session lasts until it
        expires.
        """
        if refresh_token:
            try:
                response = self._client().auth.set_session(access_token, refresh_token)
            except Exception as e:
                raise IdentityError(str(e) or "Could not restore the session") from e
            return self._session_from_response(response)

        user = self.get_user(access_token)
        if not user:
            raise IdentityError("The access token was rejected")
        expires_at = int(time.time()) + int(expires_in) if expires_in else None
        return ProviderSession(
            access_token=access_token,
            refresh_token=None,
            token_type=token_type or 'bearer',
            expires_at=expires_at,
            user_id=str(user.id),
            email=user.email,
        )

    def get_user(self, access_token: str):
        """Return the provider's user for a token, or None."""
        try:
            response = self._client().auth.get_user(access_token)
        except Exception as e:
            raise IdentityError(str(e) or "Could not read the user") from e
        return response.user if response else None

    def send_magic_link(self, email: str, redirect_to: str):
        """Ask the provider to email a one-time sign-in link."""
        try:
            self._client().auth.sign_in_with_otp({
                'email': email,
                'options': {'email_redirect_to': redirect_to},
            })
        except Exception as e:
            raise IdentityError(str(e) or "Could not send the sign-in link") from e
        logger.info(f"Magic link requested for {email}")

    def oauth_url(self, provider: str, redirect_to: str, query_params: dict = None) -> str:
        """URL of the provider's OAuth consent screen."""
        try:
            response = self._client().auth.sign_in_with_oauth({
                'provider': provider,
                'options': {
                    'redirect_to': redirect_to,
                    'query_params': query_params or {},
                },
            })
        except Exception as e:
            raise IdentityError(str(e) or "Could not start OAuth sign-in") from e
        return response.url

    def sign_out(self, access_token: str):
        """Revoke the session on the provider side."""
        try:
            self._client().auth.admin.sign_out(access_token)
        except Exception as e:
            raise IdentityError(str(e) or "Sign-out failed") from e


# Module-level client (initialized when app loads)
_identity = None


def init_identity(app):
    """Configure the provider client from the environment. Stays None when unset."""
    global _identity
    url = os.environ.get('SUPABASE_URL')
    key = os.environ.get('SUPABASE_ANON_KEY')
    if url and key:
        _identity = IdentityClient(url, key)
        logger.info("Identity provider enabled")
    else:
        _identity = None
        logger.info("Identity provider disabled (set SUPABASE_URL and SUPABASE_ANON_KEY to enable)")
    return _identity


def get_identity():
    return _identity
