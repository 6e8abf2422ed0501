"""BMS Pay client against canned HTTP responses."""
import time

import pytest
import requests

from marketplace.domain.errors import GatewayError, TransientGatewayError
from marketplace.services.payment_gateway import (
    CardData,
    PaymentGatewayClient,
    extract_guid,
    is_sale_approved,
    status_to_bool,
    with_return_url,
)

from fakes import FakeHttp, FakeResponse

LINK_ID = "3f2504e0-4f89-41d3-9a0c-0305e82c3301"
CARD = CardData(number="4111 1111 1111 1111", exp_month="8", exp_year="2030", cvn="123", zip_code="33132")


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda seconds: None)


def client(*responses, is_test=False):
    return PaymentGatewayClient(
        base_url="https://gw.example",
        test_url="https://gw-test.example",
        is_test=is_test,
        timeout=5,
        http=FakeHttp(*responses),
    )


class TestApprovalSignals:
    def test_any_single_signal_approves(self):
        assert is_sale_approved({"ResponseCode": 200})
        assert is_sale_approved({"ResponseCode": "200"})
        assert is_sale_approved({"verbiage": "Approved"})
        assert is_sale_approved({"AuthorizationNumber": "123456"})

    def test_no_signal_is_a_decline(self):
        assert not is_sale_approved({"ResponseCode": 400, "verbiage": "DECLINED", "AuthorizationNumber": ""})
        assert not is_sale_approved({})

    def test_link_status_values(self):
        assert status_to_bool(1)
        assert status_to_bool("1")
        assert status_to_bool(" Paid ")
        assert not status_to_bool(0)
        assert not status_to_bool("pending")


def test_extract_guid():
    assert extract_guid(f"https://gw.example/pay/{LINK_ID}?x=1") == LINK_ID
    assert extract_guid("https://gw.example/pay/abc") is None
    assert extract_guid(None) is None


def test_with_return_url_replaces_existing_value():
    url = with_return_url("https://gw.example/pay?id=1&returnUrl=old", "https://shop.example/es/checkout/success?sessionId=9")
    assert url.startswith("https://gw.example/pay?id=1&returnUrl=")
    assert "old" not in url
    assert "sessionId%3D9" in url


def test_card_repr_is_masked():
    assert repr(CARD) == "CardData(****1111)"
    assert CARD.digits == "4111111111111111"
    assert CARD.exp_date == "0830"


class TestCreatePaymentLink:
    def test_returns_link_and_id(self):
        gw = client(FakeResponse(200, {"ResponseCode": 200, "PaymentLink": {"Id": LINK_ID, "Link": "https://gw.example/l/x", "Status": 0}}))

        link = gw.create_payment_link(5799, "Order #1", "1")

        assert link.id == LINK_ID
        assert link.link == "https://gw.example/l/x"
        body = gw.http.calls[0]["json"]
        assert body["PaymentLink"]["Amount"] == "57.99"
        assert body["PaymentLink"]["InvoiceNumber"] == "1"

    def test_id_falls_back_to_guid_in_link(self):
        gw = client(FakeResponse(200, {"ResponseCode": 200, "PaymentLink": {"Link": f"https://gw.example/l/{LINK_ID}"}}))
        assert gw.create_payment_link(100, "x", "2").id == LINK_ID

    def test_business_error_is_not_retried(self):
        gw = client(FakeResponse(200, {"ResponseCode": 400, "Msg": ["Invalid amount"]}))

        with pytest.raises(GatewayError) as exc:
            gw.create_payment_link(100, "x", "3")

        assert str(exc.value) == "Invalid amount"
        assert len(gw.http.calls) == 1

    def test_html_page_is_retried_then_succeeds(self):
        gw = client(
            FakeResponse(502, text="<html><body>Bad gateway</body></html>"),
            FakeResponse(200, {"ResponseCode": 200, "PaymentLink": {"Id": LINK_ID, "Link": "https://gw.example/l/x"}}),
        )

        assert gw.create_payment_link(100, "x", "4").id == LINK_ID
        assert len(gw.http.calls) == 2

    def test_network_errors_give_up_after_three_attempts(self):
        gw = client(*[requests.ConnectionError("reset")] * 3)

        with pytest.raises(TransientGatewayError) as exc:
            gw.create_payment_link(100, "x", "5")

        assert isinstance(exc.value.__cause__, requests.ConnectionError)
        assert len(gw.http.calls) == 3

    def test_timeout_then_success(self):
        gw = client(
            requests.Timeout("slow"),
            FakeResponse(200, {"ResponseCode": 200, "PaymentLink": {"Id": LINK_ID, "Link": "https://gw.example/l/x"}}),
        )

        assert gw.create_payment_link(100, "x", "6").id == LINK_ID
        assert len(gw.http.calls) == 2


class TestLinkStatus:
    def test_paid_only_when_invoice_and_id_match(self):
        gw = client(
            FakeResponse(200, {"ResponseCode": 200, "PaymentLinks": [
                {"Id": LINK_ID, "InvoiceNumber": "12", "Status": 1, "Active": True},
            ]})
        )
        status = gw.get_link_status("12", LINK_ID)
        assert status.paid
        assert status.record["Id"] == LINK_ID

    def test_other_link_with_same_invoice_is_ignored(self):
        gw = client(
            FakeResponse(200, {"ResponseCode": 200, "PaymentLinks": [
                {"Id": "aaaaaaaa-0000-4000-8000-000000000000", "InvoiceNumber": "12", "Status": 1},
                {"Id": LINK_ID, "InvoiceNumber": "120", "Status": 1},
            ]})
        )
        assert not gw.get_link_status("12", LINK_ID).paid

    def test_newest_matching_record_wins(self):
        gw = client(
            FakeResponse(200, {"ResponseCode": 200, "PaymentLinks": [
                {"Id": LINK_ID, "InvoiceNumber": "12", "Status": 1},
                {"Id": LINK_ID, "InvoiceNumber": "12", "Status": 0},
            ]})
        )
        assert not gw.get_link_status("12", LINK_ID).paid

    def test_link_id_is_required(self):
        with pytest.raises(GatewayError):
            client().get_link_status("12", None)


class TestSale:
    def test_approved_sale(self):
        gw = client(FakeResponse(200, {"ResponseCode": 200, "verbiage": "APPROVED", "AuthorizationNumber": "OK1234", "ServiceReferenceNumber": "SR9"}))

        result = gw.sale(5973, CARD, "9-abc")

        assert result.approved
        assert result.auth_number == "OK1234"
        assert result.reference == "SR9"
        form = gw.http.calls[0]["data"]
        assert form["Amount"] == "59.73"
        assert form["CardNumber"] == "4111111111111111"
        assert form["ExpDate"] == "0830"
        assert form["UserTransactionNumber"] == "9-abc"

    def test_decline_is_a_result_not_an_error(self):
        gw = client(FakeResponse(200, {"ResponseCode": 400, "verbiage": "DECLINED"}))

        result = gw.sale(100, CARD, "9-abd")

        assert not result.approved
        assert result.message == "DECLINED"
        assert len(gw.http.calls) == 1

    def test_test_mode_uses_test_url(self):
        gw = client(FakeResponse(200, {"ResponseCode": 200}), is_test=True)
        gw.sale(100, CARD, "9-abe")
        assert gw.http.calls[0]["url"] == "https://gw-test.example/api/Transactions/Sale"

    def test_persistent_html_raises_transient_error(self):
        gw = client(*[FakeResponse(503, text="<html>down</html>")] * 3)
        with pytest.raises(TransientGatewayError):
            gw.sale(100, CARD, "9-abf")

    def test_dropped_connection_is_a_gateway_error(self):
        gw = client(*[requests.ConnectionError("reset")] * 3)

        with pytest.raises(GatewayError):
            gw.sale(100, CARD, "9-abg")

        assert len(gw.http.calls) == 3
