"""HTTP client for the expense API, used by the Streamlit frontend.

One logical submission carries one idempotency key. post_expense_with_retry
reuses that key on every attempt, so a retry after a timeout can never create
a second expense.
"""

import logging
import os
import time
import uuid
from decimal import Decimal, InvalidOperation

import requests

logger = logging.getLogger("walletwise.client")

API_BASE = os.getenv("API_BASE_URL", "http://localhost:8000").rstrip("/")
REQUEST_TIMEOUT = 10
MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = 2


def new_idempotency_key() -> str:
    return str(uuid.uuid4())


def _error_detail(resp: requests.Response):
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return body.get("detail", body.get("error", resp.text))
    return body


def post_expense(payload: dict, idempotency_key: str, api_base: str = API_BASE) -> tuple[bool, str, dict | None]:
    """POST /expenses. Returns (success, message, data)."""
    try:
        resp = requests.post(
            f"{api_base}/expenses",
            json=payload,
            headers={"Idempotency-Key": idempotency_key},
            timeout=REQUEST_TIMEOUT,
        )
        if resp.status_code == 201:
            return True, "Expense saved successfully!", resp.json()
        if resp.status_code == 200:
            return True, "Expense was already saved.", resp.json()
        return False, f"API error {resp.status_code}: {_error_detail(resp)}", None
    except requests.exceptions.ConnectionError:
        return False, "Could not connect to the API. Please try again.", None
    except requests.exceptions.Timeout:
        return False, "Request timed out. Your expense may have been saved; retrying is safe.", None


def _is_retryable(message: str) -> bool:
    # connection errors, timeouts and 5xx; 4xx means the payload itself is wrong
    return not message.startswith("API error 4")


def post_expense_with_retry(
    payload: dict,
    idempotency_key: str,
    api_base: str = API_BASE,
    max_retries: int = MAX_RETRIES,
    backoff: float = RETRY_BACKOFF_SECONDS,
) -> tuple[bool, str, dict | None]:
    """
    Calls `post_expense` with retries and exponential backoff, always under the
    same idempotency key.
    """
    success, message, data = False, "No attempt made.", None
    for attempt in range(max_retries):
        success, message, data = post_expense(payload, idempotency_key, api_base)
        if success or not _is_retryable(message) or attempt == max_retries - 1:
            break
        delay = backoff * (2 ** attempt)
        logger.warning("create attempt %d failed (%s), retrying in %ss", attempt + 1, message, delay)
        time.sleep(delay)
    return success, message, data


def fetch_expenses(category: str = "", sort_desc: bool = True, api_base: str = API_BASE) -> tuple[bool, str, list | None]:
    """GET /expenses. Returns (success, message, data)."""
    params = {}
    if sort_desc:
        params["sort"] = "date_desc"
    if category and category != "All":
        params["category"] = category
    try:
        resp = requests.get(f"{api_base}/expenses", params=params, timeout=REQUEST_TIMEOUT)
        if resp.status_code == 200:
            return True, "", resp.json()
        return False, f"API error {resp.status_code}: {_error_detail(resp)}", None
    except requests.exceptions.ConnectionError:
        return False, "Could not connect to the API.", None
    except requests.exceptions.Timeout:
        return False, "Request timed out while loading expenses.", None


def fetch_categories(api_base: str = API_BASE) -> list[str]:
    """GET /expenses/categories, falling back to just "All" when unreachable."""
    try:
        resp = requests.get(f"{api_base}/expenses/categories", timeout=REQUEST_TIMEOUT)
    except requests.exceptions.RequestException:
        return ["All"]
    if resp.status_code != 200:
        return ["All"]
    body = resp.json()
    return ["All"] + sorted(set(body.get("known", [])) | set(body.get("used", [])))


def format_money(amount_minor: int, symbol: str = "$") -> str:
    try:
        return f"{symbol}{Decimal(int(amount_minor)) / 100:,.2f}"
    except (InvalidOperation, TypeError, ValueError):
        return f"{symbol}{amount_minor}"


def total_minor(expenses: list[dict]) -> int:
    return sum(int(e["amount_minor"]) for e in expenses)
