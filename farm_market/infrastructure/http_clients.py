import hashlib
import hmac
import json
import logging
import time
import httpx

from farm_market.application.interfaces import PaymentsService
from farm_market.domain.exceptions import PaymentServiceError, WebhookSignatureError

logger = logging.getLogger(__name__)


class HTTPPaymentsClient(PaymentsService):
    """Клиент Stripe-совместимого API платежных намерений"""

    def __init__(self, base_url: str, api_key: str, webhook_secret: str = "", signature_tolerance: int = 300):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._signature_tolerance = signature_tolerance

    async def create_payment_intent(self, amount: int, currency: str, metadata: dict, idempotency_key: str) -> dict:
        form = {
            "amount": str(amount),
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = str(value)

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self._base_url}/v1/payment_intents",
                    data=form,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Idempotency-Key": idempotency_key
                    },
                    timeout=30.0
                )

                if response.status_code == 200:
                    return response.json()
                else:
                    raise PaymentServiceError(f"Payment service ошибка: {response.status_code}")

        except httpx.RequestError as e:
            logger.error(f"Payment service ошибка подключения: {e}")
            raise PaymentServiceError(f"Payment service не доступен: {str(e)}")

    async def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{self._base_url}/v1/payment_intents/{payment_intent_id}",
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    timeout=10.0
                )

                if response.status_code == 200:
                    return response.json()
                else:
                    raise PaymentServiceError(f"Payment service ошибка: {response.status_code}")

        except httpx.RequestError as e:
            logger.error(f"Payment service ошибка подключения: {e}")
            raise PaymentServiceError(f"Payment service не доступен: {str(e)}")

    def verify_webhook(self, payload: bytes, signature: str) -> dict:
        """Проверка заголовка ``t=<ts>,v1=<hmac>`` и разбор тела события"""
        if not self._webhook_secret:
            raise WebhookSignatureError("Секрет вебхука не настроен")

        parts = {}
        for item in (signature or "").split(","):
            key, _, value = item.strip().partition("=")
            parts.setdefault(key, []).append(value)

        timestamp = (parts.get("t") or [""])[0]
        candidates = parts.get("v1") or []
        if not timestamp or not candidates:
            raise WebhookSignatureError("Некорректный заголовок подписи")

        try:
            signed_at = int(timestamp)
        except ValueError:
            raise WebhookSignatureError("Некорректная метка времени подписи")
        if self._signature_tolerance and abs(time.time() - signed_at) > self._signature_tolerance:
            raise WebhookSignatureError("Подпись устарела")

        signed_payload = f"{timestamp}.".encode() + payload
        expected = hmac.new(self._webhook_secret.encode(), signed_payload, hashlib.sha256).hexdigest()
        if not any(hmac.compare_digest(expected, candidate) for candidate in candidates):
            raise WebhookSignatureError("Подпись вебхука не совпадает")

        try:
            return json.loads(payload)
        except ValueError:
            raise WebhookSignatureError("Тело вебхука не является JSON")


def sign_webhook_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Формирует заголовок подписи так же, как провайдер"""
    timestamp = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"
