"""Tests for the payment gateway adapters and factory."""

from unittest.mock import Mock

import pytest
import requests

from payments.gateway import FakeGateway, RazorpayGateway, build_gateway
from payments.gateway.port import IntentResult, RefundResult
from shared.config import GatewaySettings


def _response(status_code=200, body=None, json_error=False):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = body or {}
    return response


@pytest.fixture
def http():
    return Mock(spec=requests.Session)


@pytest.fixture
def razorpay(http):
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        base_url="https://api.razorpay.test/v1/",
        timeout_seconds=2.5,
        session=http,
    )


class TestFakeGateway:
    def test_default_intent_succeeds(self):
        gateway = FakeGateway()
        result = gateway.create_intent(111200, "INR", receipt="order-1")

        assert isinstance(result, IntentResult)
        assert result.success is True
        assert result.gateway_order_id.startswith("fake_order_")
        assert result.gateway_status == "created"

    def test_each_intent_gets_its_own_id(self):
        gateway = FakeGateway()
        first = gateway.create_intent(100, "INR")
        second = gateway.create_intent(100, "INR")

        assert first.gateway_order_id != second.gateway_order_id

    def test_configured_intent_fails(self):
        gateway = FakeGateway()
        gateway.configure(intents_succeed=False, failure_reason="Gateway down")

        result = gateway.create_intent(100, "INR")

        assert result.success is False
        assert result.gateway_order_id is None
        assert result.failure_reason == "Gateway down"

    def test_refunds_configured_independently(self):
        gateway = FakeGateway()
        gateway.configure(intents_succeed=True, refunds_succeed=False)

        assert gateway.create_intent(100, "INR").success is True
        result = gateway.refund("pay_1", 100)
        assert isinstance(result, RefundResult)
        assert result.success is False

    def test_default_refund_succeeds(self):
        result = FakeGateway().refund("pay_1", 5000, speed="optimum")

        assert result.success is True
        assert result.gateway_refund_id.startswith("fake_rfnd_")

    def test_records_calls(self):
        gateway = FakeGateway()
        gateway.create_intent(100, "INR", receipt="r-1")
        gateway.refund("pay_1", 100, speed="optimum")

        assert [c["method"] for c in gateway.calls] == ["create_intent", "refund"]
        assert gateway.calls_to("refund") == [
            {"method": "refund", "payment_reference": "pay_1", "amount_minor_units": 100, "speed": "optimum"}
        ]


class TestRazorpayGateway:
    def test_create_intent(self, razorpay, http):
        http.post.return_value = _response(body={"id": "order_Nx1", "status": "created"})

        result = razorpay.create_intent(111200, "INR", receipt="order-1")

        assert result == IntentResult(success=True, gateway_order_id="order_Nx1", gateway_status="created")
        http.post.assert_called_once_with(
            "https://api.razorpay.test/v1/orders",
            json={"amount": 111200, "currency": "INR", "receipt": "order-1"},
            timeout=2.5,
        )

    def test_uses_basic_auth(self, razorpay, http):
        assert http.auth == ("rzp_test_key", "rzp_test_secret")

    def test_refund(self, razorpay, http):
        http.post.return_value = _response(body={"id": "rfnd_9", "status": "processed"})

        result = razorpay.refund("pay_123", 111200, speed="optimum")

        assert result.success is True
        assert result.gateway_refund_id == "rfnd_9"
        http.post.assert_called_once_with(
            "https://api.razorpay.test/v1/payments/pay_123/refund",
            json={"speed": "optimum", "amount": 111200},
            timeout=2.5,
        )

    def test_full_refund_omits_amount(self, razorpay, http):
        http.post.return_value = _response(body={"id": "rfnd_9", "status": "processed"})

        razorpay.refund("pay_123")

        assert http.post.call_args.kwargs["json"] == {"speed": "normal"}

    def test_timeout_is_a_failed_result(self, razorpay, http):
        http.post.side_effect = requests.Timeout()

        result = razorpay.create_intent(100, "INR")

        assert result.success is False
        assert "timed out" in result.failure_reason

    def test_connection_error_is_a_failed_result(self, razorpay, http):
        http.post.side_effect = requests.ConnectionError("refused")

        result = razorpay.refund("pay_123", 100)

        assert result.success is False
        assert "unreachable" in result.failure_reason

    def test_rejection_carries_gateway_description(self, razorpay, http):
        http.post.return_value = _response(
            status_code=400,
            body={"error": {"code": "BAD_REQUEST_ERROR", "description": "The amount must be at least INR 1.00"}},
        )

        result = razorpay.create_intent(10, "INR")

        assert result.success is False
        assert result.failure_reason == "The amount must be at least INR 1.00"

    def test_rejection_without_json_body(self, razorpay, http):
        http.post.return_value = _response(status_code=503, json_error=True)

        result = razorpay.refund("pay_123", 100)

        assert result.failure_reason == "HTTP 503"

    def test_malformed_success_body(self, razorpay, http):
        http.post.return_value = _response(status_code=200, json_error=True)

        result = razorpay.create_intent(100, "INR")

        assert result.success is False
        assert result.failure_reason == "Malformed gateway response"

    def test_intent_without_id_is_a_failed_result(self, razorpay, http):
        http.post.return_value = _response(body={"status": "created"})

        result = razorpay.create_intent(100, "INR")

        assert result == IntentResult(
            success=False, gateway_status="failed", failure_reason="Gateway response carried no id"
        )

    def test_refund_without_id_is_a_failed_result(self, razorpay, http):
        http.post.return_value = _response(body={"status": "processed"})

        result = razorpay.refund("pay_123", 100)

        assert result.success is False
        assert result.gateway_refund_id is None
        assert result.failure_reason == "Gateway response carried no id"


class TestBuildGateway:
    def test_fake(self):
        assert isinstance(build_gateway(GatewaySettings(provider="fake")), FakeGateway)

    def test_razorpay(self):
        gateway = build_gateway(
            GatewaySettings(provider="razorpay", key_id="k", key_secret="s", timeout_seconds=7)
        )

        assert isinstance(gateway, RazorpayGateway)
        assert gateway.timeout_seconds == 7.0

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            build_gateway(GatewaySettings(provider="paypal"))
