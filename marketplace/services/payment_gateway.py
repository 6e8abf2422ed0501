# marketplace/services/payment_gateway.py
import re
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from marketplace.domain.errors import GatewayError, TransientGatewayError
from marketplace.domain.money import format_cents
from marketplace.utils import settings
from marketplace.utils.logging import get_logger
from marketplace.utils.retry import gateway_retry

logger = get_logger(__name__)

_GUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}", re.I)


@dataclass(frozen=True)
class PaymentLink:
    id: str | None
    link: str
    status: object = None
    invoice_number: str | None = None


@dataclass(frozen=True)
class LinkStatus:
    paid: bool
    record: dict | None = None
    active: bool | None = None


@dataclass(frozen=True)
class CardData:
    number: str
    exp_month: str
    exp_year: str
    cvn: str
    name_on_card: str | None = None
    zip_code: str | None = None

    @property
    def digits(self) -> str:
        return re.sub(r"\D", "", self.number or "")

    @property
    def exp_date(self) -> str:
        #"8", "2030" -> "0830"
        return f"{str(self.exp_month).zfill(2)}{str(self.exp_year)[-2:]}"

    @property
    def last_four(self) -> str:
        return self.digits[-4:]

    def __repr__(self) -> str:
        return f"CardData(****{self.last_four})"


@dataclass(frozen=True)
class SaleResult:
    approved: bool
    message: str | None = None
    auth_number: str | None = None
    reference: str | None = None
    user_transaction_number: str | None = None
    card_type: str | None = None
    last_four: str | None = None
    raw: dict = field(default_factory=dict)


def extract_guid(link: str | None) -> str | None:
    if not isinstance(link, str):
        return None
    m = _GUID_RE.search(link)
    return m.group(0) if m else None


def status_to_bool(status) -> bool:
    if status == 1 or status == "1":
        return True
    return isinstance(status, str) and status.strip().lower() == "paid"


def is_sale_approved(data: dict) -> bool:
    """Any one of: ResponseCode 200, APPROV* verbiage, an authorization number."""
    try:
        code_ok = int(data.get("ResponseCode")) == 200
    except (TypeError, ValueError):
        code_ok = False
    verbiage_ok = "APPROV" in str(data.get("verbiage") or "").upper()
    auth_ok = bool(data.get("AuthorizationNumber"))
    return code_ok or verbiage_ok or auth_ok


def with_return_url(link: str, return_url: str) -> str:
    parts = urlsplit(link)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "returnUrl"]
    query.append(("returnUrl", return_url))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class PaymentGatewayClient:
    """
    BMS Pay client:
    - payment links (hosted page), created and later queried by invoice number
    - direct card sale (Transactions/Sale)
    """

    provider = "bmspay"

    def __init__(
        self,
        base_url: str | None = None,
        test_url: str | None = None,
        is_test: bool | None = None,
        timeout: float | None = None,
        http=None,
    ):
        self.base_url = (base_url or settings.BMS_URL).rstrip("/")
        self.test_url = (test_url or settings.BMS_TEST_URL).rstrip("/")
        self.is_test = settings.BMS_IS_TEST if is_test is None else is_test
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self.http = http or requests.Session()

    def _creds(self) -> dict:
        return {
            "AppKey": settings.BMS_APP_KEY,
            "AppType": str(settings.BMS_APP_TYPE),
            "mid": str(settings.BMS_MID),
            "cid": str(settings.BMS_CID),
            "UserName": settings.BMS_USERNAME,
            "Password": settings.BMS_PASSWORD,
            "IsTest": "true" if self.is_test else "false",
        }

    def _request(self, method: str, url: str, **kwargs):
        try:
            return getattr(self.http, method)(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"Gateway {method.upper()} {url} failed: {e}")
            raise TransientGatewayError(f"gateway_network_error: {e.__class__.__name__}") from e

    @staticmethod
    def _parse(resp) -> dict:
        text = resp.text or ""
        if "<html" in text.lower() or resp.status_code >= 500:
            logger.warning(f"Gateway returned HTTP {resp.status_code} without JSON")
            raise TransientGatewayError(f"gateway_http_{resp.status_code}", raw=text[:500])
        try:
            data = resp.json() if text else {}
        except ValueError:
            raise GatewayError("Malformed gateway response", raw=text[:500])
        if not isinstance(data, dict):
            raise GatewayError("Malformed gateway response", raw=data)
        return data

    @gateway_retry()
    def create_payment_link(self, amount_cents: int, description: str, invoice_number: str) -> PaymentLink:
        body = {
            "PaymentLink": {
                "Amount": format_cents(amount_cents),
                "Description": description,
                "InvoiceNumber": str(invoice_number),
                "Type": "Fixed",
            },
            **self._creds(),
        }
        url = f"{self.base_url}/api/PaymentLinks/AddPaymentLink"
        logger.info(f"Gateway POST {url} invoice={invoice_number}")

        resp = self._request("post", url, json=body)
        data = self._parse(resp)

        if data.get("ResponseCode") != 200:
            msg = (data.get("Msg") or [None])[0] or data.get("verbiage") or f"AddPaymentLink HTTP {resp.status_code}"
            raise GatewayError(msg, raw=data)

        pl = data.get("PaymentLink") or {}
        link = pl.get("Link")
        if not link:
            raise GatewayError("Gateway did not return a payment link", raw=data)

        return PaymentLink(
            id=pl.get("Id") or extract_guid(link),
            link=link,
            status=pl.get("Status"),
            invoice_number=str(pl.get("InvoiceNumber") or invoice_number),
        )

    @gateway_retry()
    def find_payment_links(self, invoice_number: str) -> list[dict]:
        params = {**self._creds(), "InvoiceNumber": str(invoice_number)}
        url = f"{self.base_url}/api/PaymentLinks"
        logger.info(f"Gateway GET {url} invoice={invoice_number}")

        #the provider expects the same fields as a form body on a GET
        resp = self._request(
            "get",
            url,
            params=params,
            data=params,
            headers={"Accept": "application/json"},
        )
        data = self._parse(resp)

        if data.get("ResponseCode") not in (None, 200):
            raise GatewayError((data.get("Msg") or ["Gateway error"])[0], raw=data)

        links = data.get("PaymentLinks")
        return links if isinstance(links, list) else []

    def get_link_status(self, invoice_number: str, link_id: str) -> LinkStatus:
        """
        Paid only if a record matches BOTH the invoice number and the link id
        stored when the link was created; newest records are checked first.
        """
        if not link_id:
            raise GatewayError("link_id is required to confirm a payment")
        invoice = str(invoice_number).strip()
        guid = str(link_id).strip().lower()

        for record in reversed(self.find_payment_links(invoice)):
            record = record or {}
            if str(record.get("InvoiceNumber") or "").strip() != invoice:
                continue
            if str(record.get("Id") or "").strip().lower() != guid:
                continue
            return LinkStatus(
                paid=status_to_bool(record.get("Status")),
                record=record,
                active=record.get("Active") is True,
            )

        return LinkStatus(paid=False)

    @gateway_retry()
    def sale(self, amount_cents: int, card: CardData, user_transaction_number: str) -> SaleResult:
        form = {
            **self._creds(),
            "Amount": format_cents(amount_cents),
            "TransactionType": "1",
            "Track2": "",
            "ZipCode": card.zip_code or "",
            "CVN": card.cvn or "",
            "CardNumber": card.digits,
            "ExpDate": card.exp_date,
            "NameOnCard": card.name_on_card or "",
            "UserTransactionNumber": user_transaction_number,
            "Source": "ApiClient",
        }
        base = self.test_url if self.is_test else self.base_url
        url = f"{base}/api/Transactions/Sale"
        logger.info(f"Gateway POST {url} utn={user_transaction_number} card={card!r}")

        resp = self._request("post", url, data=form)
        data = self._parse(resp)

        return SaleResult(
            approved=is_sale_approved(data),
            message=data.get("verbiage") or data.get("message") or data.get("ResponseText"),
            auth_number=data.get("AuthorizationNumber") or None,
            reference=data.get("ServiceReferenceNumber") or None,
            user_transaction_number=user_transaction_number,
            card_type=data.get("CardType"),
            last_four=data.get("LastFour") or card.last_four,
            raw=data,
        )
