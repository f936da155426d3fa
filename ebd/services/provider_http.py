"""
HTTP policy shared by every external provider client.

- Throttle: at least `min_interval` seconds between two calls of one session
- 401: refresh the token once and retry; a second 401 is an error
- 429: wait backoff * attempt (linear) and retry, up to max_retries
- 5xx, connection errors and timeouts: wait retry_delay and retry, up to max_retries
- Any other non-2xx: ProviderError right away
"""
import json
import logging
import time
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import requests
from flask import current_app, has_app_context

from ebd.exceptions import ProviderError
from ebd.metrics import provider_requests_total

logger = logging.getLogger(__name__)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return float(obj)
    if hasattr(obj, 'isoformat'):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _error_text(response) -> str:
    try:
        data = response.json()
    except ValueError:
        return (response.text or '')[:500]
    if isinstance(data, dict):
        error = data.get('error')
        if isinstance(error, dict):
            return error.get('description') or error.get('message') or json.dumps(error)[:500]
        if error:
            return str(error)
        if data.get('message'):
            return str(data['message'])
    return json.dumps(data)[:500]


class ProviderSession:
    """Bearer-authenticated JSON session with retry, backoff and throttling."""

    def __init__(
        self,
        provider: str,
        base_url: str,
        token_manager=None,
        access_token: Optional[str] = None,
        http=None,
        min_interval: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        config = current_app.config if has_app_context() else {}
        self.provider = provider
        self.base_url = base_url.rstrip('/')
        self.token_manager = token_manager
        self.access_token = access_token
        self.http = http or requests.Session()
        self.min_interval = min_interval if min_interval is not None else config.get('BLING_REQUEST_INTERVAL', 0.34)
        self.max_retries = max_retries if max_retries is not None else config.get('BLING_MAX_RETRIES', 3)
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else config.get('BLING_BACKOFF_SECONDS', 3)
        )
        self.retry_delay = retry_delay if retry_delay is not None else config.get('PROVIDER_RETRY_DELAY', 1)
        self.timeout = timeout or config.get('PROVIDER_TIMEOUT', 15)
        self.extra_headers = headers or {}
        self._sleep = sleep
        self._monotonic = monotonic
        self._last_call: Optional[float] = None

    @property
    def _tag(self) -> str:
        return f"[{self.provider.upper()}]"

    def _throttle(self) -> None:
        if self.min_interval and self._last_call is not None:
            elapsed = self._monotonic() - self._last_call
            if elapsed < self.min_interval:
                self._sleep(self.min_interval - elapsed)
        self._last_call = self._monotonic()

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json', 'Content-Type': 'application/json'}
        token = self.token_manager.get_access_token() if self.token_manager else self.access_token
        if token:
            headers['Authorization'] = f'Bearer {token}'
        headers.update(self.extra_headers)
        return headers

    def _url(self, path: str) -> str:
        if path.startswith(('http://', 'https://')):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, params: Optional[dict] = None, json_body: Any = None,
                allow_404: bool = False) -> Any:
        """
        Perform a request under the retry policy.

        Returns:
            Parsed JSON body ({} when empty), or None for a 404 when allow_404

        Raises:
            ProviderError: non-retryable status or retries exhausted
            TokenRefreshError: the 401 refresh failed
        """
        url = self._url(path)
        body = json.dumps(json_body, default=_json_default) if json_body is not None else None
        refreshed = False
        attempt = 0

        while True:
            self._throttle()
            try:
                response = self.http.request(
                    method, url, params=params, data=body, headers=self._headers(), timeout=self.timeout
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                attempt += 1
                provider_requests_total.labels(provider=self.provider, outcome='network_error').inc()
                if attempt > self.max_retries:
                    logger.error(f"{self._tag} {method} {path} failed after {attempt} attempts: {e}")
                    raise ProviderError(self.provider, f'Falha de conexão: {e}')
                logger.warning(f"{self._tag} {method} {path} network error ({e}), retry {attempt}/{self.max_retries}")
                self._sleep(self.retry_delay)
                continue

            status = response.status_code

            if status == 401:
                if self.token_manager is not None and not refreshed:
                    logger.info(f"{self._tag} 401 on {method} {path}, refreshing token")
                    self.token_manager.refresh()
                    refreshed = True
                    continue
                provider_requests_total.labels(provider=self.provider, outcome='unauthorized').inc()
                raise ProviderError(self.provider, f'Não autorizado: {_error_text(response)}', http_status=401)

            if status == 429:
                attempt += 1
                provider_requests_total.labels(provider=self.provider, outcome='rate_limited').inc()
                if attempt > self.max_retries:
                    raise ProviderError(self.provider, 'Limite de requisições excedido', http_status=429)
                wait = self.backoff_seconds * attempt
                logger.warning(f"{self._tag} 429 on {method} {path}, waiting {wait}s ({attempt}/{self.max_retries})")
                self._sleep(wait)
                continue

            if status >= 500:
                attempt += 1
                provider_requests_total.labels(provider=self.provider, outcome='server_error').inc()
                if attempt > self.max_retries:
                    raise ProviderError(self.provider, f'Erro do servidor: {_error_text(response)}', http_status=status)
                logger.warning(f"{self._tag} {status} on {method} {path}, retry {attempt}/{self.max_retries}")
                self._sleep(self.retry_delay)
                continue

            if status == 404 and allow_404:
                provider_requests_total.labels(provider=self.provider, outcome='not_found').inc()
                return None

            if status >= 400:
                provider_requests_total.labels(provider=self.provider, outcome='client_error').inc()
                message = _error_text(response)
                logger.error(f"{self._tag} {method} {path} -> {status}: {message}")
                raise ProviderError(self.provider, message, http_status=status)

            provider_requests_total.labels(provider=self.provider, outcome='ok').inc()
            if status == 204 or not response.content:
                return {}
            try:
                return response.json()
            except ValueError:
                raise ProviderError(self.provider, 'Resposta inválida (JSON esperado)', http_status=status)

    def get(self, path: str, params: Optional[dict] = None, allow_404: bool = False) -> Any:
        return self.request('GET', path, params=params, allow_404=allow_404)

    def post(self, path: str, json_body: Any = None) -> Any:
        return self.request('POST', path, json_body=json_body)
