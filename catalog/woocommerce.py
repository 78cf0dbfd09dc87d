import logging
import time
from threading import Lock

import requests
from django.conf import settings

from .pricing import PLATFORMS, format_price_text, link_field, parse_price_text, price_field

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RATE_LIMIT = 5  # requests per second
DEFAULT_TIMEOUT = 30  # seconds
PER_PAGE = 100
API_PATH = '/wp-json/wc/v3'

# (url fragments, button text) – first match wins.
BUTTON_TEXTS = (
    (('shopee.vn', 'shopee.com'), 'Mua tại Shopee'),
    (('tiktok.com', 'tiktokshop'), 'Mua tại TikTok'),
    (('lazada.vn', 'lazada.com'), 'Mua tại Lazada'),
    (('dienmayxanh.com', 'dmx'), 'Mua tại Điện máy xanh'),
    (('tiki.vn', 'tiki.com'), 'Mua tại Tiki'),
)
DEFAULT_BUTTON_TEXT = 'Mua ngay'
OUT_OF_STOCK_LABEL = 'Hết hàng'


class RateLimiter:
    """
    Fixed-window limiter shared by the threads using one client.

    Up to ``rate`` calls pass per ``period`` seconds. When a window is used up
    the caller sleeps until it ends and then takes the first slot of the next.
    """

    def __init__(self, rate: int, period: float = 1.0):
        if rate < 1:
            raise ValueError(f"rate must be at least 1, got {rate!r}")
        self.rate = rate
        self.period = period
        self._tokens = rate
        self._window_start = None
        self._lock = Lock()

    def acquire(self):
        with self._lock:
            now = time.monotonic()
            if self._window_start is None or now - self._window_start >= self.period:
                self._window_start = now
                self._tokens = self.rate

            if self._tokens == 0:
                wait = self.period - (now - self._window_start)
                if wait > 0:
                    logger.debug("Storefront rate limit reached, waiting %.2fs.", wait)
                    time.sleep(wait)
                self._window_start = time.monotonic()
                self._tokens = self.rate
            self._tokens -= 1


def button_text_for(url: str) -> str:
    lowered = url.lower()
    for fragments, text in BUTTON_TEXTS:
        if any(fragment in lowered for fragment in fragments):
            return text
    return DEFAULT_BUTTON_TEXT


def _price_string(value) -> str:
    amount = float(value)
    return str(int(amount)) if amount.is_integer() else str(amount)


def map_row_to_payload(row: dict) -> dict:
    """Map a local product row onto the WooCommerce product schema."""
    payload = {}

    external_url = row.get('external_url')
    if external_url:
        payload['type'] = 'external'
        payload['external_url'] = external_url
        payload['button_text'] = button_text_for(external_url)

    if row.get('price'):
        payload['regular_price'] = _price_string(row['price'])
    if row.get('promotional_price'):
        payload['sale_price'] = _price_string(row['promotional_price'])
    if row.get('sku'):
        payload['sku'] = row['sku']

    meta_data = []
    for platform in PLATFORMS:
        link = row.get(link_field(platform))
        price = row.get(price_field(platform))
        if link:
            meta_data.append({'key': link_field(platform), 'value': link})
        if price:
            meta_data.append({'key': price_field(platform), 'value': format_price_text(price)})
    if meta_data:
        payload['meta_data'] = meta_data

    return payload


def map_payload_to_row(product: dict) -> dict:
    """Map a WooCommerce product onto local product columns."""
    images = product.get('images') or []
    row = {
        'website_id': str(product['id']),
        'title': (product.get('name') or '').strip(),
        'price': parse_price_text(product.get('regular_price') or '0'),
        'promotional_price': parse_price_text(product.get('sale_price') or '0'),
        'sku': (product.get('sku') or '').strip(),
        'external_url': (product.get('external_url') or product.get('permalink') or '').strip(),
        'image_url': (images[0].get('src') or '').strip() if images else '',
        'currency': 'VND',
    }

    link_keys = {link_field(p) for p in PLATFORMS}
    price_keys = {price_field(p) for p in PLATFORMS}
    for meta in product.get('meta_data') or []:
        key = meta.get('key')
        value = meta.get('value')
        if key in link_keys:
            row[key] = str(value or '').strip()
        elif key in price_keys:
            row[key] = parse_price_text(value) or None
        elif key == 'het_hang':
            row['het_hang'] = str(value).strip() == OUT_OF_STOCK_LABEL

    return row


class WooCommerceClient:
    """
    WooCommerce REST v3 client for one storefront.

    Requests go through a per-client rate limiter. A 429 response is retried,
    waiting for ``Retry-After`` when the storefront sends one and doubling a
    1s backoff otherwise. Limits default to the WOOCOMMERCE_* settings.
    """

    def __init__(self, base_url: str, consumer_key: str, consumer_secret: str, timeout: float = None,
                 rate_limit: int = None, max_retries: int = None):
        if not base_url:
            raise ValueError("WooCommerce base URL is required.")
        self._base_url = base_url.rstrip('/') + API_PATH
        self._session = requests.Session()
        self._session.auth = (consumer_key, consumer_secret)
        self._session.headers.update({'Content-Type': 'application/json'})
        self._timeout = timeout or getattr(settings, 'WOOCOMMERCE_TIMEOUT', DEFAULT_TIMEOUT)
        self.max_retries = max_retries or getattr(settings, 'WOOCOMMERCE_MAX_RETRIES', MAX_RETRIES)
        self.rate_limiter = RateLimiter(rate_limit or getattr(settings, 'WOOCOMMERCE_RATE_LIMIT', RATE_LIMIT))

    @classmethod
    def for_project(cls, project) -> 'WooCommerceClient':
        """Build a client from the project's store credentials, falling back to settings."""
        return cls(
            base_url=project.woocommerce_base_url or settings.WOOCOMMERCE_BASE_URL,
            consumer_key=project.woocommerce_consumer_key or settings.WOOCOMMERCE_CONSUMER_KEY,
            consumer_secret=project.woocommerce_consumer_secret or settings.WOOCOMMERCE_CONSUMER_SECRET,
        )

    def update_product(self, website_id, row: dict) -> requests.Response:
        """PUT the mapped row onto the storefront product with the given id."""
        url = f"{self._base_url}/products/{website_id}"
        return self._request_with_retry('PUT', url, json=map_row_to_payload(row))

    def get_product(self, website_id) -> dict:
        """Fetch one storefront product, already mapped onto local columns."""
        url = f"{self._base_url}/products/{website_id}"
        response = self._request_with_retry('GET', url)
        return map_payload_to_row(response.json())

    def list_products(self, page: int = 1, per_page: int = PER_PAGE) -> list:
        url = f"{self._base_url}/products"
        params = {'page': page, 'per_page': per_page, 'status': 'publish'}
        return self._request_with_retry('GET', url, params=params).json()

    def iter_products(self, per_page: int = PER_PAGE):
        """Yield raw storefront products page by page until a short page."""
        page = 1
        while True:
            products = self.list_products(page=page, per_page=per_page)
            logger.info("Fetched storefront page %d with %d products.", page, len(products))
            yield from products
            if len(products) < per_page:
                return
            page += 1

    def _request_with_retry(self, method: str, url: str, **kwargs) -> requests.Response:
        backoff = 1.0
        for attempt in range(1, self.max_retries + 1):
            self.rate_limiter.acquire()
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
            if response.status_code != 429:
                response.raise_for_status()
                return response

            if attempt == self.max_retries:
                break
            wait = self._parse_retry_after(response)
            if wait is None:
                wait = backoff
                backoff *= 2
            logger.warning(
                "Storefront throttled %s %s (attempt %d/%d), retrying in %.1fs.",
                method, url, attempt, self.max_retries, wait,
            )
            time.sleep(wait)

        raise RuntimeError(
            f"API request {method} {url} failed after {self.max_retries} attempts due to rate limiting."
        )

    @staticmethod
    def _parse_retry_after(response: requests.Response):
        """Return float seconds from Retry-After header, or None if absent/invalid."""
        header = response.headers.get('Retry-After')
        if header is None:
            return None
        try:
            return float(header)
        except (TypeError, ValueError):
            return None
