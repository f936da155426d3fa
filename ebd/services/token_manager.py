"""
OAuth token acquisition with transparent refresh.

One TokenManager per (tenant, provider). Callers ask for an access token and
get a valid one; when the stored token is expired, or about to expire, it is
refreshed exactly once and the new pair is committed before the provider
call proceeds.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import requests
from flask import current_app, has_app_context

from ebd.exceptions import TokenRefreshError, DataIntegrityError
from ebd.metrics import provider_requests_total
from ebd.models import ProviderToken

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 21600  # 6h, used when the provider omits expires_in
DEFAULT_BUFFER_SECONDS = 300


def _utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None,
               buffer_seconds: int = DEFAULT_BUFFER_SECONDS) -> bool:
    """
    True when the token expires within `buffer_seconds` of `now`.

    A token without a known expiry is treated as expired.
    """
    if expires_at is None:
        return True
    now = _utc_naive(now) if now else datetime.utcnow()
    return _utc_naive(expires_at) <= now + timedelta(seconds=buffer_seconds)


class TokenManager:
    """Acquire-with-refresh for one provider's stored credentials."""

    def __init__(
        self,
        session,
        tenant_id: int,
        provider: str = 'bling',
        token_url: Optional[str] = None,
        http=None,
        buffer_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        timeout: Optional[float] = None,
    ):
        config = current_app.config if has_app_context() else {}
        self.session = session
        self.tenant_id = tenant_id
        self.provider = provider
        self.token_url = token_url or config.get('BLING_TOKEN_URL', 'https://www.bling.com.br/Api/v3/oauth/token')
        self.http = http or requests.Session()
        self.buffer_seconds = (
            buffer_seconds if buffer_seconds is not None
            else config.get('TOKEN_EXPIRY_BUFFER_SECONDS', DEFAULT_BUFFER_SECONDS)
        )
        self.clock = clock
        self.timeout = timeout or config.get('PROVIDER_TIMEOUT', 15)

    @property
    def _tag(self) -> str:
        return f"[{self.provider.upper()}]"

    def load(self) -> ProviderToken:
        token = self.session.query(ProviderToken).filter_by(
            tenant_id=self.tenant_id, provider=self.provider
        ).first()
        if not token:
            raise DataIntegrityError(f'Credenciais do provedor {self.provider} não configuradas')
        return token

    def get_access_token(self) -> str:
        """Return a valid access token, refreshing first when needed."""
        token = self.load()
        if not token.access_token or is_expired(token.token_expires_at, self.clock(), self.buffer_seconds):
            logger.info(f"{self._tag} Access token expired or expiring soon, refreshing (tenant {self.tenant_id})")
            self.refresh(token)
        return token.access_token

    def refresh(self, token: Optional[ProviderToken] = None) -> ProviderToken:
        """
        Exchange the stored refresh token for a new pair.

        Raises:
            TokenRefreshError: provider rejected the refresh or the call failed
        """
        token = token or self.load()
        if not token.refresh_token:
            raise TokenRefreshError(self.provider, 'Refresh token não disponível; reautorize a integração')

        data = self._post_token(token, {
            'grant_type': 'refresh_token',
            'refresh_token': token.refresh_token,
        })
        self._store(token, data)
        logger.info(f"{self._tag} Token refreshed, expires at {token.token_expires_at} (tenant {self.tenant_id})")
        return token

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> ProviderToken:
        """OAuth callback: trade an authorization code for the first token pair."""
        token = self.load()
        form = {'grant_type': 'authorization_code', 'code': code}
        if redirect_uri:
            form['redirect_uri'] = redirect_uri
        data = self._post_token(token, form)
        self._store(token, data)
        logger.info(f"{self._tag} Authorization code exchanged (tenant {self.tenant_id})")
        return token

    def _post_token(self, token: ProviderToken, form: dict) -> dict:
        try:
            response = self.http.post(
                self.token_url,
                data=form,
                auth=(token.client_id, token.client_secret),
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            provider_requests_total.labels(provider=self.provider, outcome='token_error').inc()
            logger.error(f"{self._tag} Token request failed: {e}")
            raise TokenRefreshError(self.provider, f'Falha na requisição de token: {e}')

        if response.status_code != 200:
            provider_requests_total.labels(provider=self.provider, outcome='token_error').inc()
            logger.error(f"{self._tag} Token endpoint answered {response.status_code}: {response.text}")
            raise TokenRefreshError(
                self.provider, f'Falha ao renovar token: {response.text}', http_status=response.status_code
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not data.get('access_token'):
            raise TokenRefreshError(self.provider, 'Resposta do provedor sem access_token', http_status=200)

        provider_requests_total.labels(provider=self.provider, outcome='token_refreshed').inc()
        return data

    def _store(self, token: ProviderToken, data: dict) -> None:
        expires_in = int(data.get('expires_in') or DEFAULT_EXPIRES_IN)
        token.access_token = data['access_token']
        # Some providers rotate the refresh token, others keep it
        token.refresh_token = data.get('refresh_token') or token.refresh_token
        token.token_expires_at = _utc_naive(self.clock()) + timedelta(seconds=expires_in)
        self.session.commit()
