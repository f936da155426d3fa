"""
Mercado Pago payments lookup.

Wraps the official SDK; responses come back as {"status": <http>, "response": {...}}.
"""

import logging
import time
from typing import Callable, Dict, Any, Optional

import requests
from flask import current_app, has_app_context
import mercadopago  # type: ignore

from ebd.exceptions import ProviderError
from ebd.metrics import provider_requests_total

logger = logging.getLogger(__name__)

PROVIDER = 'mercadopago'

# MP payment_type_id -> forma de pagamento sent to the ERP
PAYMENT_TYPE_MAP = {
    'pix': 'pix',
    'card': 'card',
    'boleto': 'boleto',
    'credit_card': 'card',
    'debit_card': 'card',
    'account_money': 'pix',
    'bank_transfer': 'pix',
    'ticket': 'boleto',
}


def payment_method_for(payment_type_id: Optional[str], fallback: Optional[str] = None) -> str:
    """Normalize MP payment types to pix | card | boleto (default pix)."""
    return PAYMENT_TYPE_MAP.get(payment_type_id or '') or PAYMENT_TYPE_MAP.get(fallback or '') or 'pix'


class MercadoPagoService:
    """Service to read payments from the Mercado Pago API."""

    def __init__(self, access_token: Optional[str] = None, sdk=None,
                 max_retries: Optional[int] = None, retry_delay: Optional[float] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize SDK with access token (or use an already built SDK)."""
        config = current_app.config if has_app_context() else {}
        self.max_retries = max_retries if max_retries is not None else config.get('BLING_MAX_RETRIES', 3)
        self.retry_delay = retry_delay if retry_delay is not None else config.get('PROVIDER_RETRY_DELAY', 1)
        self._sleep = sleep
        if sdk is not None:
            self.sdk = sdk
            return
        self.token = access_token or config.get('MP_ACCESS_TOKEN')
        if not self.token:
            logger.warning("[MP] ACCESS_TOKEN not found in config.")
            self.sdk = None
        else:
            self.sdk = mercadopago.SDK(self.token)

    def _check_sdk(self):
        if not self.sdk:
            raise ProviderError(PROVIDER, 'SDK não inicializado: MP_ACCESS_TOKEN ausente')

    def get_payment(self, payment_id) -> Dict[str, Any]:
        """
        Fetch a payment by id.

        Network errors and 5xx answers are retried up to max_retries times,
        retry_delay seconds apart.

        Raises:
            ProviderError: MP answered with a 4xx status, or retries exhausted
        """
        self._check_sdk()
        attempt = 0
        while True:
            try:
                response = self.sdk.payment().get(str(payment_id))
            except (requests.ConnectionError, requests.Timeout) as e:
                attempt += 1
                provider_requests_total.labels(provider=PROVIDER, outcome='network_error').inc()
                if attempt > self.max_retries:
                    logger.error(f"[MP] Payment {payment_id} lookup failed after {attempt} attempts: {e}")
                    raise ProviderError(PROVIDER, f'Falha de conexão: {e}')
                logger.warning(f"[MP] Network error fetching payment {payment_id} ({e}), retry {attempt}/{self.max_retries}")
                self._sleep(self.retry_delay)
                continue
            except requests.RequestException as e:
                provider_requests_total.labels(provider=PROVIDER, outcome='network_error').inc()
                logger.error(f"[MP] Request error fetching payment {payment_id}: {e}")
                raise ProviderError(PROVIDER, f'Erro na requisição: {e}')

            status = response.get('status')
            if status == 200:
                provider_requests_total.labels(provider=PROVIDER, outcome='ok').inc()
                payment = response['response']
                logger.info(f"[MP] Payment {payment_id}: status={payment.get('status')} detail={payment.get('status_detail')}")
                return payment

            body = response.get('response') or {}
            message = body.get('message') if isinstance(body, dict) else str(body)

            if not status or status >= 500:
                attempt += 1
                provider_requests_total.labels(provider=PROVIDER, outcome='server_error').inc()
                if attempt > self.max_retries:
                    logger.error(f"[MP] Error fetching payment {payment_id}: {status} {message}")
                    raise ProviderError(PROVIDER, message or 'Erro do servidor', http_status=status)
                logger.warning(f"[MP] {status} fetching payment {payment_id}, retry {attempt}/{self.max_retries}")
                self._sleep(self.retry_delay)
                continue

            provider_requests_total.labels(provider=PROVIDER, outcome='client_error').inc()
            logger.error(f"[MP] Error fetching payment {payment_id}: {status} {message}")
            raise ProviderError(PROVIDER, message or 'Erro ao consultar pagamento', http_status=status)
