"""
Payment gateway clients for Paguelo Fácil (Gateway A) and Yappy (Gateway B).

Both gateways are black boxes: we ask them for a payment link / order, the
customer pays on their side, and they call us back with provider-specific
fields. ``normalize_*_callback`` turns those fields into one
``PaymentConfirmation`` so the enrollment and reconciliation code never sees
provider field names.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.payments_service.exceptions import GatewayError
from services.payments_service.models import PaymentMethod

logger = get_logger(__name__)

PAGUELOFACIL_SANDBOX_URL = "https://sandbox.paguelofacil.com/LinkDeamon.cfm"
PAGUELOFACIL_PRODUCTION_URL = "https://secure.paguelofacil.com/LinkDeamon.cfm"
PAGUELOFACIL_MIN_AMOUNT = 1.00
PAGUELOFACIL_DESCRIPTION_MAX = 150
PAGUELOFACIL_LINK_TTL_SECONDS = 3600

YAPPY_TESTING_URL = "https://api-comecom-uat.yappycloud.com"
YAPPY_PRODUCTION_URL = "https://apipagosbg.bgeneral.cloud"
YAPPY_ORDER_ID_MAX = 15
YAPPY_SUCCESS_CODE = "0000"

PAGUELOFACIL_DENIED = {"denegado", "denegada", "rechazado", "rechazada"}
PAGUELOFACIL_APPROVED = {"aprobada", "approved"}
YAPPY_APPROVED = {"e", "ejecutado", "approved", "completed", "success"}

# Order of our custom PARM_n values on Paguelo Fácil links (PARM_1 is the order id)
PAGUELOFACIL_CUSTOM_PARAMS = ("type", "token")


@dataclass
class PaymentConfirmation:
    """Provider-neutral view of a gateway callback."""

    channel: PaymentMethod
    approved: bool
    amount: Optional[float]
    operation_reference: Optional[str]
    payment_type: str = ""
    draft_token: Optional[str] = None
    reason: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentLink:
    url: str
    code: Optional[str] = None


@dataclass
class YappySession:
    token: str
    epoch_time: int


@dataclass
class YappyOrder:
    order_id: str
    transaction_id: str
    token: Optional[str]
    document_name: Optional[str]
    raw: dict[str, Any] = field(default_factory=dict)


def _parse_amount(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return None


def flatten_params(params: Mapping[str, Any]) -> dict[str, str]:
    """Collapse multi-valued query params to their first value, as strings."""
    flat: dict[str, str] = {}
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            value = value[0] if value else ""
        flat[key] = "" if value is None else str(value)
    return flat


# =========================================================================
# Gateway A: Paguelo Fácil
# =========================================================================


class PagueloFacilClient:
    """Async client for the Paguelo Fácil LinkDeamon endpoint."""

    def __init__(
        self,
        cclw: Optional[str] = None,
        sandbox: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.cclw = (cclw or settings.PAGUELOFACIL_CCLW).strip()
        if not self.cclw:
            raise ValueError("PAGUELOFACIL_CCLW is required")
        self.sandbox = settings.PAGUELOFACIL_SANDBOX if sandbox is None else sandbox
        self._transport = transport

    @property
    def link_url(self) -> str:
        return PAGUELOFACIL_SANDBOX_URL if self.sandbox else PAGUELOFACIL_PRODUCTION_URL

    @staticmethod
    def encode_return_url(url: str) -> str:
        """RETURN_URL must be sent as upper-case hex of its UTF-8 bytes."""
        return url.encode("utf-8").hex().upper()

    async def create_payment_link(
        self,
        *,
        amount: float,
        description: str,
        order_id: str,
        return_url: Optional[str] = None,
        custom_params: Optional[dict[str, str]] = None,
    ) -> PaymentLink:
        """
        Create a hosted payment link.

        Custom params are sent as PARM_2, PARM_3, ... in insertion order.

        Raises:
            GatewayError: amount below the gateway minimum, HTTP failure, or
                a response without a link url
        """
        if amount < PAGUELOFACIL_MIN_AMOUNT:
            raise GatewayError(
                f"Amount must be at least ${PAGUELOFACIL_MIN_AMOUNT:.2f}",
                gateway="paguelofacil",
            )

        form = {
            "CCLW": self.cclw,
            "CMTN": f"{amount:.2f}",
            "CDSC": description[:PAGUELOFACIL_DESCRIPTION_MAX],
            "EXPIRES_IN": str(PAGUELOFACIL_LINK_TTL_SECONDS),
            "PARM_1": order_id,
        }
        if return_url:
            form["RETURN_URL"] = self.encode_return_url(return_url)
        for index, value in enumerate((custom_params or {}).values(), start=2):
            form[f"PARM_{index}"] = str(value)

        logger.info(
            "Creating Paguelo Fácil link for order %s (%.2f, sandbox=%s)",
            order_id,
            amount,
            self.sandbox,
        )
        try:
            async with httpx.AsyncClient(
                timeout=30.0, transport=self._transport
            ) as client:
                response = await client.post(
                    self.link_url,
                    data=form,
                    headers={"Accept": "*/*"},
                )
        except httpx.RequestError as e:
            raise GatewayError(f"Request failed: {e}", gateway="paguelofacil") from e

        try:
            data = response.json()
        except ValueError:
            data = {"message": response.text}

        if not response.is_success or not data.get("success"):
            logger.error(
                "Paguelo Fácil link error: %s - %s", response.status_code, data
            )
            raise GatewayError(
                data.get("message") or "Error generating payment link",
                gateway="paguelofacil",
                status_code=response.status_code,
                response_data=data,
            )

        link = data.get("data") or {}
        if not link.get("url"):
            raise GatewayError(
                "Response did not include a payment url",
                gateway="paguelofacil",
                response_data=data,
            )
        return PaymentLink(url=link["url"], code=link.get("code"))


def paguelofacil_is_approved(params: Mapping[str, str]) -> bool:
    estado = (params.get("Estado") or "").strip().lower()
    if estado in PAGUELOFACIL_DENIED:
        return False
    total = _parse_amount(params.get("TotalPagado"))
    return (total is not None and total > 0) or estado in PAGUELOFACIL_APPROVED


def normalize_paguelofacil_callback(params: Mapping[str, Any]) -> PaymentConfirmation:
    """
    Normalize the RETURN_URL redirect (query string or POSTed body).

    Our own params may come back either as plain query keys or as PARM_n.
    """
    flat = flatten_params(params)
    custom = {
        name: flat.get(name) or flat.get(f"PARM_{index}") or ""
        for index, name in enumerate(PAGUELOFACIL_CUSTOM_PARAMS, start=2)
    }
    return PaymentConfirmation(
        channel=PaymentMethod.PAGUELOFACIL,
        approved=paguelofacil_is_approved(flat),
        amount=_parse_amount(flat.get("TotalPagado") or flat.get("amount")),
        operation_reference=flat.get("Oper") or None,
        payment_type=custom["type"],
        draft_token=custom["token"] or None,
        reason=flat.get("Razon") or None,
        raw=flat,
    )


# =========================================================================
# Gateway B: Yappy
# =========================================================================


class YappyClient:
    """Async client for the Yappy Comercial payment button API."""

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        domain_url: Optional[str] = None,
        environment: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.merchant_id = (merchant_id or settings.YAPPY_MERCHANT_ID).strip()
        if not self.merchant_id:
            raise ValueError("YAPPY_MERCHANT_ID is required")
        domain = (domain_url or settings.YAPPY_DOMAIN_URL or settings.APP_URL).strip()
        # Orders take the bare domain, merchant validation the https:// form
        self.domain = domain.replace("https://", "").replace("http://", "").rstrip("/")
        self.environment = environment or settings.YAPPY_ENVIRONMENT
        self._transport = transport

    @property
    def base_url(self) -> str:
        if self.environment == "production":
            return YAPPY_PRODUCTION_URL
        return YAPPY_TESTING_URL

    async def _request(
        self, endpoint: str, json_data: dict, headers: Optional[dict] = None
    ) -> dict:
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(
                timeout=30.0, transport=self._transport
            ) as client:
                response = await client.post(
                    url,
                    json=json_data,
                    headers={
                        "Content-Type": "application/json",
                        "Accept": "application/json",
                        **(headers or {}),
                    },
                )
        except httpx.RequestError as e:
            raise GatewayError(f"Request failed: {e}", gateway="yappy") from e

        try:
            data = response.json()
        except ValueError:
            data = {"message": response.text}

        status_info = data.get("status") or {}
        ok = status_info.get("code") == YAPPY_SUCCESS_CODE or data.get("success")
        if not response.is_success or not ok:
            logger.error("Yappy API error: %s - %s", response.status_code, data)
            raise GatewayError(
                status_info.get("description")
                or data.get("message")
                or "Yappy request failed",
                gateway="yappy",
                status_code=response.status_code,
                response_data=data,
            )
        return data

    async def validate_merchant(self) -> YappySession:
        data = await self._request(
            "/payments/validate/merchant",
            {"merchantId": self.merchant_id, "urlDomain": f"https://{self.domain}"},
        )
        body = data.get("body") or {}
        if not body.get("token") or not body.get("epochTime"):
            raise GatewayError(
                "Merchant validation returned no token",
                gateway="yappy",
                response_data=data,
            )
        return YappySession(token=body["token"], epoch_time=int(body["epochTime"]))

    async def create_order(
        self,
        *,
        order_id: str,
        amount: float,
        ipn_url: str,
        session: Optional[YappySession] = None,
    ) -> YappyOrder:
        """Validate the merchant (unless a session is given) and open an order."""
        session = session or await self.validate_merchant()
        total = f"{amount:.2f}"
        payload = {
            "merchantId": self.merchant_id,
            "orderId": order_id[:YAPPY_ORDER_ID_MAX],
            "domain": self.domain,
            "paymentDate": session.epoch_time,
            "ipnUrl": ipn_url,
            "shipping": "0.00",
            "discount": "0.00",
            "taxes": "0.00",
            "subtotal": total,
            "total": total,
        }
        logger.info("Creating Yappy order %s (%s)", payload["orderId"], total)
        # Yappy expects the raw token, without a Bearer prefix
        data = await self._request(
            "/payments/payment-wc", payload, headers={"Authorization": session.token}
        )
        body = data.get("body") or {}
        if not body.get("transactionId"):
            raise GatewayError(
                "Order response did not include a transactionId",
                gateway="yappy",
                response_data=data,
            )
        return YappyOrder(
            order_id=payload["orderId"],
            transaction_id=body["transactionId"],
            token=body.get("token"),
            document_name=body.get("documentName"),
            raw=body,
        )


def yappy_is_approved(params: Mapping[str, Any]) -> bool:
    return str(params.get("status") or "").strip().lower() in YAPPY_APPROVED


def normalize_yappy_callback(body: Mapping[str, Any]) -> PaymentConfirmation:
    """Normalize a Yappy IPN/callback body. Our params travel in ``metadata``."""
    metadata = body.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    reference = body.get("transactionId") or body.get("orderId")
    return PaymentConfirmation(
        channel=PaymentMethod.YAPPY,
        approved=yappy_is_approved(body),
        amount=_parse_amount(body.get("amount")),
        operation_reference=str(reference) if reference else None,
        payment_type=str(metadata.get("type") or body.get("type") or ""),
        draft_token=metadata.get("token") or body.get("token") or None,
        reason=None if yappy_is_approved(body) else str(body.get("status") or ""),
        raw=dict(body),
    )
