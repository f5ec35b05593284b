"""HTTP client used by the POS screen to talk to the sales API."""
import logging
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from pos_app.services.promotion_engine import TAX_RATE, round_money, json_number

logger = logging.getLogger(__name__)


class SaleRejected(Exception):
    """The server refused the sale; checkout must stay blocked."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class EvaluationSequencer:
    """
    Issues increasing sequence numbers for evaluation requests.

    Responses carrying anything but the latest number are stale and must
    not overwrite the cart display.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._latest = 0

    def next(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    @property
    def latest(self) -> int:
        with self._lock:
            return self._latest

    def is_latest(self, seq: Optional[int]) -> bool:
        with self._lock:
            return seq is not None and seq == self._latest

    def accept(self, seq: Optional[int]) -> bool:
        """True when a response for `seq` may be applied."""
        return self.is_latest(seq)


def optimistic_estimate(lines: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Un-discounted totals shown while the server cannot be reached."""
    subtotal = Decimal('0')
    for line in lines:
        subtotal += int(line.get('quantity', 0)) * Decimal(str(line.get('unit_price', 0)))
    tax = round_money(subtotal * TAX_RATE)
    return {
        'lines': [],
        'subtotal': json_number(subtotal),
        'promotion_discount': 0,
        'custom_discount': 0,
        'total_discount': 0,
        'tax': json_number(tax),
        'total': json_number(subtotal + tax),
        'active_promotion': 'none',
        'message': None,
        'custom_discount_allowed': False,
        'effective_custom_percent': 0.0,
        'estimated': True,
    }


class PosApiClient:
    """Client for /sales endpoints, sharing a cookie-authenticated session."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 5,
                 csrf_token: Optional[str] = None):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        if csrf_token:
            # Flask-WTF reads the token from this header on JSON posts
            self.session.headers['X-CSRFToken'] = csrf_token
        self.timeout = timeout
        self.sequencer = EvaluationSequencer()

    def evaluate(self, lines: List[Dict[str, Any]], custom_discount_percent=0) -> Optional[Dict[str, Any]]:
        """
        Ask the server for the authoritative evaluation of the cart.

        Returns:
            The server result, None when a newer evaluation was issued while
            this one was in flight, or an optimistic estimate (flagged
            `estimated`) when the server could not answer.
        """
        seq = self.sequencer.next()
        payload = {
            'request_seq': seq,
            'items': lines,
            'custom_discount_percent': custom_discount_percent,
        }

        try:
            response = self.session.post(f"{self.base_url}/sales/evaluate", json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[POS] Evaluation #{seq} failed, showing estimate: {e}")
            if not self.sequencer.accept(seq):
                return None
            return optimistic_estimate(lines)

        if not self.sequencer.accept(data.get('request_seq', seq)):
            logger.debug(f"[POS] Discarding stale evaluation #{seq}")
            return None
        return data.get('result')

    def create_sale(self, payload: Dict[str, Any], custom_discount_percent=0) -> Dict[str, Any]:
        """
        Confirm the sale.

        Raises:
            SaleRejected: on any failure; there is no local fallback.
        """
        body = dict(payload)
        body['custom_discount_percent'] = custom_discount_percent

        try:
            response = self.session.post(f"{self.base_url}/sales", json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[POS] Sale request failed: {e}")
            raise SaleRejected('No se pudo contactar al servidor. Intente de nuevo.') from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or data.get('status') != 'ok':
            message = data.get('message') or f'Error del servidor ({response.status_code})'
            logger.warning(f"[POS] Sale rejected [{response.status_code}]: {message}")
            raise SaleRejected(message, status_code=response.status_code, payload=data)

        return data
