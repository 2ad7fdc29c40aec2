"""Heartland Retail API client for receiving, item, inventory and sales data."""

import logging
from collections.abc import AsyncIterator
from datetime import date, datetime
from typing import Any

import httpx

from boutiqueflow.config import settings

logger = logging.getLogger(__name__)

UNKNOWN_VENDOR = "Unknown Vendor"
UNKNOWN_ITEM = "Unknown Item"

RECEIPTS_ENDPOINT = "/purchasing/receipts"
ITEMS_ENDPOINT = "/items"
VENDORS_ENDPOINT = "/purchasing/vendors"
INVENTORY_VALUES_ENDPOINT = "/inventory/values"
SALES_LINES_ENDPOINT = "/sales/ticket_lines"
CUSTOMERS_ENDPOINT = "/customers"
WHOAMI_ENDPOINT = "/system/whoami"


class HeartlandAPIError(Exception):
    """Raised when a Heartland API call fails.

    Attributes:
        status_code: HTTP status of the failed response (0 for transport errors)
        body: Raw response body, if any
    """

    def __init__(self, message: str, status_code: int = 0, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class HeartlandAuthError(HeartlandAPIError):
    """Raised when Heartland rejects the API token."""


def _filter_date(value: date | datetime) -> str:
    """Format a date for Heartland's _filter query syntax."""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def item_custom_field(item: dict[str, Any], *names: str) -> str:
    """Read the first non-empty custom field from an item.

    Heartland stores merchandising attributes in a free-form ``custom`` dict
    whose keys vary in case between stores (``color`` vs ``Color``).

    Args:
        item: Item payload from the Heartland API
        *names: Candidate keys, checked in order

    Returns:
        The first non-empty value, or an empty string
    """
    custom = item.get("custom") or {}
    for name in names:
        value = custom.get(name)
        if value:
            return str(value)
    return ""


def item_color(item: dict[str, Any]) -> str:
    return item_custom_field(item, "color", "Color")


def item_size(item: dict[str, Any]) -> str:
    return item_custom_field(item, "size", "Size")


def item_category(item: dict[str, Any]) -> str:
    return item_custom_field(item, "category", "Category", "department")


def item_brand(item: dict[str, Any]) -> str:
    return item_custom_field(item, "brand", "Brand")


class HeartlandClient:
    """Async client for the Heartland Retail REST API.

    Authenticates every request with a static Bearer token. List endpoints
    are paginated; ``paginate`` keeps requesting pages while a full page
    comes back, up to ``max_pages``.
    """

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        timeout: int | None = None,
    ) -> None:
        """Initialize the Heartland client.

        Args:
            api_token: Heartland API token. Defaults to settings.
            base_url: API base URL. Defaults to settings.
            page_size: Results per page for list endpoints. Defaults to settings.
            max_pages: Safety cap on pages fetched per listing. Defaults to settings.
            timeout: Request timeout in seconds. Defaults to settings.
        """
        self.api_token = api_token or settings.heartland_api_token
        self.base_url = (base_url or settings.heartland_api_url).rstrip("/")
        self.page_size = page_size or settings.heartland_page_size
        self.max_pages = max_pages or settings.heartland_max_pages
        self.timeout = timeout or settings.heartland_timeout
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HeartlandClient":
        """Enter async context manager."""
        self._http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(float(self.timeout)),
            follow_redirects=True,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def _client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raising if not in context manager."""
        if self._http_client is None:
            raise RuntimeError(
                "HeartlandClient must be used as an async context manager"
            )
        return self._http_client

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated API request.

        Args:
            method: HTTP method (GET, PUT, etc.)
            endpoint: API endpoint path (without base URL)
            params: Optional query parameters
            json_data: Optional JSON body

        Returns:
            Parsed JSON response, or an empty dict when the body is empty.

        Raises:
            HeartlandAuthError: On 401/403 responses.
            HeartlandAPIError: On any other non-2xx response, a transport error
                or a body that is not JSON.
        """
        if not self.api_token:
            raise HeartlandAuthError("Heartland API token must be configured")

        url = f"{self.base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_data,
            )
        except httpx.RequestError as e:
            logger.error("Heartland request error: %s %s - %s", method, endpoint, e)
            raise HeartlandAPIError(f"Request failed: {e}") from e

        if response.is_error:
            body = response.text
            logger.error(
                "Heartland API error: %s %s - %s %s",
                method,
                endpoint,
                response.status_code,
                body,
            )
            error_class = (
                HeartlandAuthError
                if response.status_code in (401, 403)
                else HeartlandAPIError
            )
            raise error_class(
                f"API call failed: {response.status_code} - {body}",
                status_code=response.status_code,
                body=body,
            )

        if not response.content or not response.content.strip():
            return {}
        try:
            return response.json()  # type: ignore[no-any-return]
        except ValueError as e:
            logger.error("Heartland returned non-JSON body: %s %s", method, endpoint)
            raise HeartlandAPIError(
                f"Invalid JSON response: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def paginate(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Iterate over every result of a paginated list endpoint.

        Args:
            endpoint: List endpoint path
            params: Extra query parameters (filters, sorting)

        Yields:
            Individual result dictionaries.
        """
        page = 1
        while page <= self.max_pages:
            page_params = dict(params or {})
            page_params["page"] = page
            page_params["per_page"] = self.page_size
            data = await self._request("GET", endpoint, params=page_params)
            results: list[dict[str, Any]] = data.get("results") or []
            for result in results:
                yield result
            if len(results) < self.page_size:
                return
            page += 1

        logger.warning(
            "Stopped paginating %s after %d pages (safety cap)",
            endpoint,
            self.max_pages,
        )

    async def fetch_all(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Collect every result of a paginated list endpoint."""
        return [result async for result in self.paginate(endpoint, params)]

    async def list_receipts(
        self,
        since: date | datetime,
        status: str | None = "complete",
    ) -> list[dict[str, Any]]:
        """Fetch receiving documents created on or after ``since``.

        Args:
            since: Earliest creation date
            status: Receipt status filter (None for all statuses)

        Returns:
            List of receipt dictionaries, newest updates first.
        """
        params: dict[str, Any] = {
            "_filter[created_at][$gte]": _filter_date(since),
            "sort[]": "updated_at,desc",
        }
        if status:
            params["_filter[status]"] = status
        return await self.fetch_all(RECEIPTS_ENDPOINT, params)

    async def list_recent_receipts(
        self,
        since: date | datetime,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Fetch one page of the most recently updated receipts of any status."""
        params = {
            "_filter[created_at][$gte]": _filter_date(since),
            "sort[]": "updated_at,desc",
            "per_page": limit,
        }
        data = await self._request("GET", RECEIPTS_ENDPOINT, params=params)
        return data.get("results") or []

    async def get_receipt(self, receipt_id: str | int) -> dict[str, Any]:
        """Fetch a single receiving document."""
        return await self._request("GET", f"{RECEIPTS_ENDPOINT}/{receipt_id}")

    async def list_receipt_lines(self, receipt_id: str | int) -> list[dict[str, Any]]:
        """Fetch every line of a receiving document."""
        return await self.fetch_all(f"{RECEIPTS_ENDPOINT}/{receipt_id}/lines")

    async def count_receipt_lines(self, receipt_id: str | int) -> tuple[int, list[dict[str, Any]]]:
        """Fetch the line count and the first few lines of a receipt.

        Returns:
            Tuple of (total line count, first page of lines)
        """
        data = await self._request(
            "GET",
            f"{RECEIPTS_ENDPOINT}/{receipt_id}/lines",
            params={"per_page": 10},
        )
        results: list[dict[str, Any]] = data.get("results") or []
        return int(data.get("total") or len(results)), results

    async def get_item(self, item_id: str | int) -> dict[str, Any]:
        """Fetch item details (description, cost, price, vendor, custom fields)."""
        return await self._request("GET", f"{ITEMS_ENDPOINT}/{item_id}")

    async def update_item(self, item_id: str | int, fields: dict[str, Any]) -> dict[str, Any]:
        """Update writable item fields (e.g. long_description)."""
        return await self._request("PUT", f"{ITEMS_ENDPOINT}/{item_id}", json_data=fields)

    async def get_vendor(self, vendor_id: str | int) -> dict[str, Any]:
        """Fetch vendor details."""
        return await self._request("GET", f"{VENDORS_ENDPOINT}/{vendor_id}")

    async def get_inventory_levels(self) -> dict[str, float]:
        """Fetch current on-hand quantity for every item.

        Returns:
            Mapping of item ID (as string) to quantity on hand.
        """
        levels: dict[str, float] = {}
        params = {"group[]": "item_id"}
        async for row in self.paginate(INVENTORY_VALUES_ENDPOINT, params):
            item_id = row.get("item_id")
            if item_id is None:
                continue
            qty = row.get("qty_on_hand")
            if qty is None:
                qty = row.get("qty", 0)
            levels[str(item_id)] = levels.get(str(item_id), 0.0) + float(qty or 0)
        return levels

    async def list_sales_lines(self, since: date | datetime) -> list[dict[str, Any]]:
        """Fetch completed sales ticket lines since ``since``."""
        params = {
            "_filter[created_at][$gte]": _filter_date(since),
            "sort[]": "created_at,asc",
        }
        return await self.fetch_all(SALES_LINES_ENDPOINT, params)

    async def list_customers(self) -> list[dict[str, Any]]:
        """Fetch every customer record."""
        return await self.fetch_all(CUSTOMERS_ENDPOINT)

    async def whoami(self) -> dict[str, Any]:
        """Fetch the identity of the API token (used for health checks)."""
        return await self._request("GET", WHOAMI_ENDPOINT)
