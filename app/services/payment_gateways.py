"""
Payment gateway adapters.

Every payment method resolves to a ``PaymentGatewayAdapter``. ``charge`` either
settles immediately (status ``paid``) or starts a redirect flow (status
``pending``) that is finished later through ``verify``. Adapters raise
``GatewayError`` on failure; the payment engine turns that into a failed
payment.
"""
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional
import random
import string
import time

import requests

from app.core.exceptions import GatewayError, GatewayTimeoutError
from app.core.logging import get_logger
from app.models.enums import PaymentMethod

logger = get_logger(__name__)

CHARGE_PAID = "paid"
CHARGE_PENDING = "pending"
CHARGE_FAILED = "failed"


@dataclass
class Payer:
    name: str
    email: str
    phone: Optional[str] = None


@dataclass
class ChargeResult:
    transaction_id: str
    reference: str
    raw_response: dict = field(default_factory=dict)
    status: str = CHARGE_PAID
    redirect_url: Optional[str] = None


@dataclass
class VerifyResult:
    status: str
    raw_response: dict = field(default_factory=dict)
    amount: Optional[Decimal] = None


class PaymentGatewayAdapter(ABC):
    provider_name = "Gateway"

    @abstractmethod
    def charge(
        self,
        violation_ref: str,
        amount: Decimal,
        payer: Payer,
        payment_id: Optional[str] = None,
    ) -> ChargeResult:
        """Start a charge of ``amount`` for the violation ``violation_ref``."""

    @abstractmethod
    def verify(self, transaction_id: str) -> VerifyResult:
        """Ask the provider for the current outcome of a previous charge."""


def _random_token(length: int, alphabet: str = string.ascii_uppercase + string.digits) -> str:
    return "".join(random.choices(alphabet, k=length))


class SandboxGateway(PaymentGatewayAdapter):
    """
    Simulated provider.

    With ``settle_immediately`` the charge is paid on the spot; otherwise it
    returns a pending outcome with a redirect to the provider's confirmation
    page and ``verify`` reports it paid.
    """

    def __init__(
        self,
        provider_name: str,
        transaction_prefix: str,
        reference_prefix: str,
        frontend_url: str,
        slug: str,
        settle_immediately: bool = True,
    ):
        self.provider_name = provider_name
        self.transaction_prefix = transaction_prefix
        self.reference_prefix = reference_prefix
        self.frontend_url = frontend_url.rstrip("/")
        self.slug = slug
        self.settle_immediately = settle_immediately

    def charge(self, violation_ref, amount, payer, payment_id=None) -> ChargeResult:
        stamp = int(time.time() * 1000)
        transaction_id = f"{self.transaction_prefix}{stamp}{_random_token(8)}"
        reference = f"{self.reference_prefix}{stamp}{_random_token(6)}"
        logger.info(
            "Sandbox charge",
            extra={"provider": self.provider_name, "payment_id": payment_id, "violation_ref": violation_ref},
        )
        if self.settle_immediately:
            return ChargeResult(
                transaction_id=transaction_id,
                reference=reference,
                raw_response={"status": CHARGE_PAID, "amount": str(amount), "sandbox": True},
                status=CHARGE_PAID,
                redirect_url=f"{self.frontend_url}/payment/success?payment_id={payment_id}",
            )
        return ChargeResult(
            transaction_id=transaction_id,
            reference=reference,
            raw_response={"status": CHARGE_PENDING, "amount": str(amount), "sandbox": True},
            status=CHARGE_PENDING,
            redirect_url=f"{self.frontend_url}/payment/{self.slug}?payment_id={payment_id}",
        )

    def verify(self, transaction_id: str) -> VerifyResult:
        return VerifyResult(status=CHARGE_PAID, raw_response={"status": CHARGE_PAID, "id": transaction_id})


class PayMongoGateway(PaymentGatewayAdapter):
    """PayMongo Sources API: creates a source and lets the payer authorize it."""

    provider_name = "PayMongo"

    # PayMongo source status -> charge outcome
    STATUS_MAP = {
        "pending": CHARGE_PENDING,
        "chargeable": CHARGE_PAID,
        "paid": CHARGE_PAID,
        "cancelled": CHARGE_FAILED,
        "expired": CHARGE_FAILED,
        "failed": CHARGE_FAILED,
    }

    def __init__(
        self,
        api_url: str,
        secret_key: str,
        frontend_url: str,
        currency: str = "PHP",
        source_type: str = "gcash",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.secret_key = secret_key
        self.frontend_url = frontend_url.rstrip("/")
        self.currency = currency
        self.source_type = source_type
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self.session.request(
                method,
                f"{self.api_url}{path}",
                auth=(self.secret_key, ""),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.Timeout as e:
            raise GatewayError(f"PayMongo request timed out: {e}", gateway_code="TIMEOUT")
        except requests.RequestException as e:
            raise GatewayError(f"PayMongo request failed: {e}", gateway_code="NETWORK_ERROR")

        if response.status_code >= 400:
            detail = None
            try:
                errors = response.json().get("errors") or []
                if errors:
                    detail = errors[0].get("detail")
                    code = errors[0].get("code")
                else:
                    code = None
            except ValueError:
                code = None
            raise GatewayError(
                f"PayMongo rejected the request: {detail or response.status_code}",
                gateway_code=code or f"HTTP_{response.status_code}",
            )
        return response.json()

    def charge(self, violation_ref, amount, payer, payment_id=None) -> ChargeResult:
        body = {
            "data": {
                "attributes": {
                    # centavos
                    "amount": int((Decimal(amount) * 100).to_integral_value()),
                    "currency": self.currency,
                    "type": self.source_type,
                    "redirect": {
                        "success": f"{self.frontend_url}/payment/success?payment_id={payment_id}",
                        "failed": f"{self.frontend_url}/payment/failed?payment_id={payment_id}",
                    },
                    "billing": {"name": payer.name, "email": payer.email, "phone": payer.phone},
                    "metadata": {"violation_ref": violation_ref, "payment_id": payment_id},
                }
            }
        }
        data = self._request("POST", "/sources", json=body)
        source = data.get("data") or {}
        attributes = source.get("attributes") or {}
        return ChargeResult(
            transaction_id=source.get("id", ""),
            reference=attributes.get("reference_number") or source.get("id", ""),
            raw_response=data,
            status=self.STATUS_MAP.get(attributes.get("status"), CHARGE_PENDING),
            redirect_url=(attributes.get("redirect") or {}).get("checkout_url"),
        )

    def verify(self, transaction_id: str) -> VerifyResult:
        data = self._request("GET", f"/sources/{transaction_id}")
        attributes = (data.get("data") or {}).get("attributes") or {}
        amount = attributes.get("amount")
        return VerifyResult(
            status=self.STATUS_MAP.get(attributes.get("status"), CHARGE_PENDING),
            raw_response=data,
            amount=(Decimal(amount) / 100) if amount is not None else None,
        )


PROVIDER_NAMES = {
    PaymentMethod.PAYMONGO: "PayMongo",
    PaymentMethod.GCASH: "GCash",
    PaymentMethod.MAYA: "Maya",
    PaymentMethod.DRAGONPAY: "DragonPay",
    PaymentMethod.CREDIT_CARD: "Credit Card",
    PaymentMethod.DEBIT_CARD: "Debit Card",
    PaymentMethod.BANK_TRANSFER: "Bank Transfer",
    PaymentMethod.CASH: "Cash",
    PaymentMethod.OTHER: "Other",
}

# method -> (transaction prefix, reference prefix, redirect slug)
SANDBOX_PROFILES = {
    PaymentMethod.PAYMONGO: ("src_", "PM", "paymongo"),
    PaymentMethod.GCASH: ("GCASH", "GCASH_REF_", "gcash"),
    PaymentMethod.MAYA: ("MAYA", "MAYA_REF_", "maya"),
    PaymentMethod.DRAGONPAY: ("DP", "DP_REF_", "dragonpay"),
    PaymentMethod.CREDIT_CARD: ("CC", "CC_REF_", "credit-card"),
    PaymentMethod.DEBIT_CARD: ("DC", "DC_REF_", "debit-card"),
}


def build_gateway_registry(settings) -> Dict[PaymentMethod, PaymentGatewayAdapter]:
    """
    Adapters for every supported method.

    Cash, bank transfer and "other" have no online gateway and are left out.
    In demo mode every online method settles through a sandbox. Otherwise only
    PayMongo and GCash are offered, both through the live PayMongo API; methods
    without a live integration are not registered, so they cannot be paid.
    """
    registry: Dict[PaymentMethod, PaymentGatewayAdapter] = {}
    if settings.DEMO_MODE:
        for method, (tx_prefix, ref_prefix, slug) in SANDBOX_PROFILES.items():
            registry[method] = SandboxGateway(
                provider_name=PROVIDER_NAMES[method],
                transaction_prefix=tx_prefix,
                reference_prefix=ref_prefix,
                frontend_url=settings.FRONTEND_URL,
                slug=slug,
                settle_immediately=True,
            )
        return registry

    for method in (PaymentMethod.PAYMONGO, PaymentMethod.GCASH):
        registry[method] = PayMongoGateway(
            api_url=settings.PAYMONGO_API_URL,
            secret_key=settings.PAYMONGO_SECRET_KEY,
            frontend_url=settings.FRONTEND_URL,
            currency=settings.CURRENCY,
            source_type="gcash",
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )
    return registry


_registry: Optional[Dict[PaymentMethod, PaymentGatewayAdapter]] = None


def get_gateway_registry() -> Dict[PaymentMethod, PaymentGatewayAdapter]:
    """FastAPI dependency returning the process-wide gateway registry."""
    global _registry
    if _registry is None:
        from app.core.config import settings

        _registry = build_gateway_registry(settings)
    return _registry


def call_with_timeout(fn, timeout: float, *args, **kwargs):
    """
    Run a gateway call with a hard deadline.

    Raises GatewayTimeoutError when ``timeout`` seconds pass first; the worker
    thread is abandoned, not interrupted.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError:
        future.cancel()
        raise GatewayTimeoutError(f"Payment gateway did not respond within {timeout:g} seconds")
    finally:
        executor.shutdown(wait=False)
