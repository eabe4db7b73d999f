import json
import logging
import re
import time
from decimal import Decimal
from typing import List, Optional

from openai import OpenAI

from donation_market.config import settings
from donation_market.errors import ServerError, ValidationError
from donation_market.services.valuation import to_money

logger = logging.getLogger(__name__)


class ReceiptReader:
    """Reads the total paid off a receipt image so owners can fill in the original price.

    - Only the first receipt URL is analysed
    - The model is asked for strict JSON, with regex fallbacks for chatty replies
    - Transient API failures are retried with exponential backoff
    """

    PROMPT = (
        "Analyze this receipt image. Find the single total amount paid (including tax and fees). "
        "Ignore partial totals. Return ONLY valid JSON of the form "
        '{"total_price": number or null}.'
    )

    def __init__(self, client=None, sleep=time.sleep):
        self._client = client
        self._sleep = sleep

    @property
    def client(self):
        # Built on first use so the app imports without an API key.
        if self._client is None:
            self._client = OpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    @staticmethod
    def _parse_total(content: str) -> Optional[Decimal]:
        content = (content or "").strip()

        # Best case: pure JSON
        try:
            data = json.loads(content)
        except Exception:
            data = None

        # Fallback: extract JSON blob
        if not isinstance(data, dict):
            m = re.search(r"\{.*\}", content, re.DOTALL)
            if m:
                try:
                    data = json.loads(m.group(0))
                except Exception:
                    data = None

        if isinstance(data, dict):
            total = data.get("total_price")
            if total is None:
                return None
            try:
                return to_money(total)
            except ValueError:
                return None

        # Final fallback: a bare amount in the reply
        amount = re.search(r"(\d+(?:\.\d+)?)", content.replace(",", ""))
        if amount:
            return to_money(amount.group(1))
        return None

    def _ask(self, url: str) -> str:
        resp = self.client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self.PROMPT},
                        {"type": "image_url", "image_url": {"url": url}},
                    ],
                }
            ],
            temperature=0.0,
            max_tokens=50,
        )
        return resp.choices[0].message.content or ""

    def extract_total(self, receipt_urls: List[str]) -> Optional[Decimal]:
        target = next((u for u in receipt_urls if u and u.strip()), None)
        if target is None:
            raise ValidationError("No receipt URL provided for analysis.")

        attempts = max(1, settings.RECEIPT_MAX_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                content = self._ask(target)
                break
            except Exception as e:
                logger.warning("Receipt analysis attempt %s failed: %s", attempt, e)
                if attempt == attempts:
                    raise ServerError("Failed to get a valid response from the receipt reader after multiple retries.")
                self._sleep(2 ** (attempt - 1))

        total = self._parse_total(content)
        if total is not None and total <= 0:
            return None
        return total
