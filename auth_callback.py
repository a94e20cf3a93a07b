"""
Sign-in callback handling.

The identity provider can hand credentials back in several shapes: an
authorization code in the query string, implicit-flow tokens in the URL
fragment, or an error in either place. extract_credential() parses the
redirect once into a single credential value, and CallbackReconciler turns
that value into one outcome for the callback page.

Nothing here touches Flask. The route supplies the provider client and a
callable that reads the session already stored for this browser.
"""
import logging
from dataclasses import dataclass
from urllib.parse import parse_qs

from constants import (
    AUTH_SUCCESS_REDIRECT_DELAY, AUTH_CANCEL_REDIRECT_DELAY,
    CANCELLATION_ERROR_CODES
)
from identity import IdentityError

logger = logging.getLogger(__name__)

# Callback page states
LOADING = 'loading'
SUCCESS = 'success'
ERROR = 'error'

# Error classifications
CANCELLED = 'cancelled'
FAILED = 'failed'


# --- CREDENTIALS ---

@dataclass(frozen=True)
class AuthCode:
    code: str


@dataclass(frozen=True)
class ImplicitToken:
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str = 'bearer'


@dataclass(frozen=True)
class ProviderError:
    code: str
    description: str | None = None

    @property
    def is_cancellation(self):
        return self.code.lower() in CANCELLATION_ERROR_CODES


@dataclass(frozen=True)
class NoCredential:
    pass


def _param(params, name):
    values = params.get(name)
    if not values:
        return None
    return values[0].strip() or None


def _parse_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def extract_credential(query='', fragment=''):
    """
    Map the query string and fragment of a callback URL to a credential.

    Precedence: an error in either channel, then fragment tokens, then a
    code (query first, fragment as fallback).
    """
    qs = parse_qs((query or '').lstrip('?'))
    frag = parse_qs((fragment or '').lstrip('#'))

    error = _param(frag, 'error') or _param(qs, 'error')
    if error:
        description = _param(frag, 'error_description') or _param(qs, 'error_description')
        return ProviderError(code=error, description=description)

    access_token = _param(frag, 'access_token')
    if access_token:
        return ImplicitToken(
            access_token=access_token,
            refresh_token=_param(frag, 'refresh_token'),
            expires_in=_parse_int(_param(frag, 'expires_in')),
            token_type=_param(frag, 'token_type') or 'bearer',
        )

    code = _param(qs, 'code') or _param(frag, 'code')
    if code:
        return AuthCode(code=code)

    return NoCredential()


# --- OUTCOME ---

@dataclass
class CallbackResult:
    state: str
    session: object = None
    kind: str | None = None
    message: str | None = None
    redirect_to: str | None = None
    delay: int | None = None  # seconds before the page redirects; None means manual

    @property
    def is_cancelled(self):
        return self.state == ERROR and self.kind == CANCELLED


class CallbackReconciler:
    """
    Turns one parsed credential into one CallbackResult.

    identity: provider client (exchange_code, set_session).
    read_existing_session: returns the session this browser already holds, or None.
    return_to: where a cancelled sign-in goes back to.
    recovery_url: callback URL without the fragment, reloaded once when
        implicit-flow tokens could not be turned into a session.
    """

    def __init__(self, identity, read_existing_session, return_to='/auth/login',
                 home_url='/', login_url='/auth/login',
                 recovery_url='/auth/callback?recovered=1',
                 success_delay=AUTH_SUCCESS_REDIRECT_DELAY,
                 cancel_delay=AUTH_CANCEL_REDIRECT_DELAY):
        self.identity = identity
        self.read_existing_session = read_existing_session
        self.return_to = return_to or login_url
        self.home_url = home_url
        self.login_url = login_url
        self.recovery_url = recovery_url
        self.success_delay = success_delay
        self.cancel_delay = cancel_delay

    def reconcile(self, credential, recovered=False):
        if isinstance(credential, ProviderError):
            return self._from_provider_error(credential)
        if isinstance(credential, ImplicitToken):
            return self._from_implicit_token(credential, recovered)
        if isinstance(credential, AuthCode):
            return self._from_auth_code(credential)
        return self._from_nothing(recovered)

    def _success(self, provider_session):
        return CallbackResult(state=SUCCESS, session=provider_session,
                              redirect_to=self.home_url, delay=self.success_delay)

    def _cancelled(self, message, redirect_to):
        return CallbackResult(state=ERROR, kind=CANCELLED, message=message,
                              redirect_to=redirect_to, delay=self.cancel_delay)

    def _failed(self, message):
        return CallbackResult(state=ERROR, kind=FAILED, message=message)

    def _from_provider_error(self, error):
        message = error.description or error.code
        if error.is_cancellation:
            logger.info(f"Sign-in cancelled by user: {error.code}")
            return self._cancelled(message or "Sign-in was cancelled.", self.return_to)
        logger.warning(f"Identity provider returned an error: {error.code} ({error.description})")
        return self._failed(message)

    def _from_implicit_token(self, token, recovered):
        existing = self.read_existing_session()
        if existing:
            return self._success(existing)
        try:
            provider_session = self.identity.set_session(
                token.access_token,
                refresh_token=token.refresh_token,
                expires_in=token.expires_in,
                token_type=token.token_type,
            )
        except IdentityError as e:
            logger.warning(f"Could not establish session from access token: {e}")
            if recovered:
                return self._failed(str(e))
            # Drop the fragment and come back once with whatever the provider stored
            return CallbackResult(state=LOADING, redirect_to=self.recovery_url, delay=0)
        return self._success(provider_session)

    def _from_auth_code(self, auth_code):
        try:
            provider_session = self.identity.exchange_code(auth_code.code)
        except IdentityError as e:
            logger.warning(f"Code exchange failed: {e}")
            # The provider sometimes reports an error after it already issued the session
            existing = self.read_existing_session()
            if existing:
                return self._success(existing)
            return self._failed(str(e))
        return self._success(provider_session)

    def _from_nothing(self, recovered):
        if recovered:
            existing = self.read_existing_session()
            if existing:
                return self._success(existing)
            return self._failed("We couldn't complete your sign-in. Please try again.")
        # Usually the back button from the provider's consent screen
        return self._cancelled("No sign-in details were received.", self.login_url)
