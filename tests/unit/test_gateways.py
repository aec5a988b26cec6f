"""Unit tests for the Paguelo Fácil and Yappy clients and callback normalization."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from services.payments_service.exceptions import GatewayError
from services.payments_service.gateways import (
    PAGUELOFACIL_SANDBOX_URL,
    YAPPY_TESTING_URL,
    PagueloFacilClient,
    YappyClient,
    normalize_paguelofacil_callback,
    normalize_yappy_callback,
)
from services.payments_service.models import PaymentMethod

# ---------------------------------------------------------------------------
# Paguelo Fácil link creation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_paguelofacil_link_request_shape():
    """The LinkDeamon form carries amount, hex RETURN_URL and our PARM_n values."""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["form"] = parse_qs(request.content.decode())
        return httpx.Response(
            200,
            json={"success": True, "data": {"url": "https://pay.example/abc", "code": "LK-1"}},
        )

    client = PagueloFacilClient(
        cclw="CCLW-TEST", sandbox=True, transport=httpx.MockTransport(handler)
    )
    link = await client.create_payment_link(
        amount=160,
        description="Matrícula 2 jugadores",
        order_id="enr-1",
        return_url="https://academy.test/cb",
        custom_params={"type": "enrollment", "token": "enrollment_tok"},
    )

    assert link.url == "https://pay.example/abc"
    assert link.code == "LK-1"
    assert captured["url"] == PAGUELOFACIL_SANDBOX_URL
    form = {k: v[0] for k, v in captured["form"].items()}
    assert form["CCLW"] == "CCLW-TEST"
    assert form["CMTN"] == "160.00"
    assert form["PARM_1"] == "enr-1"
    assert form["PARM_2"] == "enrollment"
    assert form["PARM_3"] == "enrollment_tok"
    assert bytes.fromhex(form["RETURN_URL"]).decode() == "https://academy.test/cb"
    assert form["RETURN_URL"] == form["RETURN_URL"].upper()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_paguelofacil_rejects_amount_below_minimum():
    """Amounts under $1.00 never reach the gateway."""

    def handler(request):  # pragma: no cover - must not be called
        raise AssertionError("gateway should not be called")

    client = PagueloFacilClient(cclw="X", transport=httpx.MockTransport(handler))
    with pytest.raises(GatewayError):
        await client.create_payment_link(amount=0.5, description="x", order_id="o")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_paguelofacil_error_response_raises_gateway_error():
    """A response without success surfaces the gateway's message."""

    def handler(request):
        return httpx.Response(200, json={"success": False, "message": "CCLW inválido"})

    client = PagueloFacilClient(cclw="X", transport=httpx.MockTransport(handler))
    with pytest.raises(GatewayError) as exc_info:
        await client.create_payment_link(amount=80, description="x", order_id="o")
    assert exc_info.value.message == "CCLW inválido"
    assert exc_info.value.gateway == "paguelofacil"


@pytest.mark.unit
def test_paguelofacil_client_requires_cclw(monkeypatch):
    """Without credentials the client cannot be built."""
    from libs.common.config import get_settings

    monkeypatch.setattr(get_settings(), "PAGUELOFACIL_CCLW", "")
    with pytest.raises(ValueError):
        PagueloFacilClient()


# ---------------------------------------------------------------------------
# Paguelo Fácil callback normalization
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_paguelofacil_approved_callback():
    """Approved redirect with our custom params coming back as PARM_n."""
    confirmation = normalize_paguelofacil_callback(
        {
            "Estado": "Aprobada",
            "TotalPagado": "160.00",
            "Oper": "PF-998877",
            "PARM_2": "enrollment",
            "PARM_3": "enrollment_tok",
        }
    )
    assert confirmation.channel == PaymentMethod.PAGUELOFACIL
    assert confirmation.approved is True
    assert confirmation.amount == 160.0
    assert confirmation.operation_reference == "PF-998877"
    assert confirmation.payment_type == "enrollment"
    assert confirmation.draft_token == "enrollment_tok"


@pytest.mark.unit
def test_paguelofacil_plain_param_names_are_accepted():
    """Our params may also come back under their own names, possibly multi-valued."""
    confirmation = normalize_paguelofacil_callback(
        {"TotalPagado": ["80"], "Oper": ["PF-1"], "type": ["enrollment"], "token": ["t1"]}
    )
    assert confirmation.approved is True
    assert confirmation.draft_token == "t1"


@pytest.mark.unit
def test_paguelofacil_denied_callback():
    """A denied status wins even when an amount is present."""
    confirmation = normalize_paguelofacil_callback(
        {"Estado": "Denegada", "TotalPagado": "80.00", "Razon": "Fondos insuficientes"}
    )
    assert confirmation.approved is False
    assert confirmation.reason == "Fondos insuficientes"


# ---------------------------------------------------------------------------
# Yappy
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_yappy_create_order_validates_merchant_first():
    """Merchant validation token is sent raw as Authorization on the order call."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/payments/validate/merchant":
            return httpx.Response(
                200,
                json={
                    "status": {"code": "0000"},
                    "body": {"token": "session-token", "epochTime": 1700000000000},
                },
            )
        return httpx.Response(
            200,
            json={
                "status": {"code": "0000"},
                "body": {
                    "transactionId": "TX-1",
                    "token": "order-token",
                    "documentName": "doc",
                },
            },
        )

    client = YappyClient(
        merchant_id="MID",
        domain_url="https://academy.test/",
        environment="testing",
        transport=httpx.MockTransport(handler),
    )
    order = await client.create_order(
        order_id="enr-12345678901234567", amount=160, ipn_url="https://academy.test/ipn"
    )

    assert [str(c.url).replace(YAPPY_TESTING_URL, "") for c in calls] == [
        "/payments/validate/merchant",
        "/payments/payment-wc",
    ]
    validate_body = json.loads(calls[0].content)
    assert validate_body == {"merchantId": "MID", "urlDomain": "https://academy.test"}

    order_body = json.loads(calls[1].content)
    assert calls[1].headers["Authorization"] == "session-token"
    assert order_body["domain"] == "academy.test"
    assert order_body["total"] == "160.00"
    assert len(order_body["orderId"]) == 15
    assert order.transaction_id == "TX-1"
    assert order.token == "order-token"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_yappy_error_status_raises():
    """A non-success status code becomes a GatewayError."""

    def handler(request):
        return httpx.Response(
            200, json={"status": {"code": "E002", "description": "Comercio inválido"}}
        )

    client = YappyClient(
        merchant_id="MID", domain_url="academy.test", transport=httpx.MockTransport(handler)
    )
    with pytest.raises(GatewayError) as exc_info:
        await client.validate_merchant()
    assert exc_info.value.message == "Comercio inválido"


@pytest.mark.unit
def test_yappy_callback_uses_metadata():
    """The draft token and payment type travel in the callback's metadata."""
    confirmation = normalize_yappy_callback(
        {
            "status": "E",
            "amount": "260.00",
            "transactionId": "TX-9",
            "orderId": "enr-1",
            "metadata": {"type": "enrollment", "token": "enrollment_tok"},
        }
    )
    assert confirmation.channel == PaymentMethod.YAPPY
    assert confirmation.approved is True
    assert confirmation.amount == 260.0
    assert confirmation.operation_reference == "TX-9"
    assert confirmation.draft_token == "enrollment_tok"


@pytest.mark.unit
def test_yappy_callback_falls_back_to_order_id():
    """Without a transaction id the order id identifies the operation."""
    confirmation = normalize_yappy_callback({"status": "R", "orderId": "enr-2"})
    assert confirmation.approved is False
    assert confirmation.operation_reference == "enr-2"
    assert confirmation.amount is None
