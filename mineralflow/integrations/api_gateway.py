"""
BACKEND FETCH GATEWAY

Purpose:
- One entry per backend operation across the four subsystems
- Attach the current bearer token to every call
- Convert every failure into a uniform "no data" result

Requirements:
• Timeout protection (configurable, 10s default)
• Never retry internally (retry belongs to the cache and polling layers)
• Never raise to the caller: failures come back as Err(FetchFailure)
• Non-2xx is a failure regardless of body; keep status and raw body
• 2xx with an unparseable JSON body is a failure

Author: MineralFlow Operations
"""

import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import requests

from mineralflow import config
from mineralflow.core.result import (
    Err,
    FetchFailure,
    FetchResult,
    Ok,
    PROTOCOL,
    SHAPE,
    TRANSPORT,
)

# Configure logging
logger = logging.getLogger(__name__)

# operation -> (subsystem, HTTP method, path template)
OPERATIONS: Dict[str, Tuple[str, str, str]] = {
    # Landside: trucks
    "list_trucks": ("landside", "GET", "/trucks"),
    "get_truck": ("landside", "GET", "/trucks/{id}"),
    "create_truck": ("landside", "POST", "/trucks"),
    "update_truck": ("landside", "PUT", "/trucks/{id}"),
    "delete_truck": ("landside", "DELETE", "/trucks/{id}"),
    "update_truck_status": ("landside", "PATCH", "/trucks/{id}/status"),
    "get_truck_movements": ("landside", "GET", "/trucks/{id}/movements"),
    "get_truck_metrics": ("landside", "GET", "/trucks/metrics"),
    "trucks_on_site_count": ("landside", "GET", "/trucks/on-site/count"),
    "arrival_compliance": ("landside", "GET", "/arrival-compliance"),

    # Landside: appointments
    "list_appointments": ("landside", "GET", "/appointments"),
    "create_appointment": ("landside", "POST", "/appointments"),
    "update_appointment": ("landside", "PUT", "/appointments/{id}"),
    "delete_appointment": ("landside", "DELETE", "/appointments/{id}"),

    # Warehousing
    "list_warehouses": ("warehousing", "GET", ""),
    "get_warehouse": ("warehousing", "GET", "/{id}"),
    "create_warehouse": ("warehousing", "POST", ""),
    "update_warehouse": ("warehousing", "PUT", "/{id}"),
    "delete_warehouse": ("warehousing", "DELETE", "/{id}"),
    "add_material": ("warehousing", "POST", "/{id}/materials"),
    "remove_material": ("warehousing", "DELETE", "/{id}/materials/{material_id}"),
    "warehouse_stats": ("warehousing", "GET", "/stats"),
    "capacity_alerts": ("warehousing", "GET", "/capacity-alerts"),

    # Invoicing
    "list_purchase_orders": ("invoicing", "GET", "/purchase-orders"),
    "create_purchase_order": ("invoicing", "POST", "/purchase-orders"),
    "update_purchase_order": ("invoicing", "PUT", "/purchase-orders/{id}"),
    "delete_purchase_order": ("invoicing", "DELETE", "/purchase-orders/{id}"),

    # Waterside
    "list_shipping_orders": ("waterside", "GET", "/shipping-orders"),
    "get_shipping_order": ("waterside", "GET", "/shipping-orders/{id}"),
    "submit_shipping_order": ("waterside", "POST", "/shipping-orders"),
    "unmatched_shipping_orders": ("waterside", "GET", "/foreman/unmatched-shipping-orders"),
    "shipment_arrivals": ("waterside", "GET", "/foreman/shipment-arrivals"),
    "match_shipping_order": ("waterside", "POST", "/foreman/match-shipping-order"),
    "outstanding_inspections": ("waterside", "GET", "/inspections/outstanding"),
    "complete_inspection": ("waterside", "POST", "/inspections/complete"),
    "outstanding_bunkering": ("waterside", "GET", "/bunkering/outstanding"),
    "complete_bunkering": ("waterside", "POST", "/bunkering/complete"),
    "vessel_operations": ("waterside", "GET", "/captain/operations/{vessel_number}"),
    "operations_overview": ("waterside", "GET", "/captain/operations-overview"),
}


class SessionAuth:
    """
    Holds the bearer token for the dashboard session.

    The gateway only reads the token; how it is issued or refreshed is
    outside this layer.
    """

    def __init__(self, token: Optional[str] = None):
        self._token = token if token is not None else config.ACCESS_TOKEN

    def login(self, token: str) -> None:
        self._token = token
        logger.info("Session token updated")

    def logout(self) -> None:
        self._token = None
        logger.info("Session token cleared")

    @property
    def token(self) -> Optional[str]:
        return self._token

    def __call__(self) -> Optional[str]:
        return self._token


def build_truck_query(
    filters: Optional[Mapping[str, Any]] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
) -> Dict[str, str]:
    """Query parameters for list_trucks (status/material/seller filters, date range, paging)."""
    params: Dict[str, str] = {}
    filters = filters or {}

    for name in ("status", "material", "seller"):
        values = filters.get(name)
        if values:
            params[name] = ",".join(values)

    date_range = filters.get("date_range") or {}
    if date_range.get("start"):
        params["dateFrom"] = date_range["start"].isoformat()
    if date_range.get("end"):
        params["dateTo"] = date_range["end"].isoformat()

    if page:
        params["page"] = str(page)
    if limit:
        params["limit"] = str(limit)
    return params


class ApiGateway:
    """
    Single HTTP entry point for every backend operation.

    Usage:
        gateway = ApiGateway(token_provider=SessionAuth("abc"))
        result = gateway.call("list_trucks", query={"limit": "20"})
        if result.ok:
            payload = result.value
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.urls = config.subsystem_urls(base_url)
        self.token_provider = token_provider or SessionAuth()
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.API_TIMEOUT

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        token = self.token_provider()
        headers["Authorization"] = f"Bearer {token or ''}"
        return headers

    def url_for(self, operation: str, **path_params: Any) -> str:
        subsystem, _, template = OPERATIONS[operation]
        return f"{self.urls[subsystem]}{template.format(**path_params)}"

    def call(
        self,
        operation: str,
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
        **path_params: Any,
    ) -> FetchResult:
        """
        Perform one HTTP call for a named operation.

        Args:
            operation: Key of OPERATIONS
            body: JSON request body (POST/PUT/PATCH)
            query: Query string parameters
            **path_params: Values for the path template ({id}, ...)

        Returns:
            Ok(parsed JSON) or Err(FetchFailure)
        """
        _, method, _ = OPERATIONS[operation]
        url = self.url_for(operation, **path_params)

        try:
            logger.info(f"{method} {url} ({operation})")
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                params=dict(query) if query else None,
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            logger.error(f"Backend timeout for {operation}")
            return Err(FetchFailure(TRANSPORT, "request timed out", operation=operation))
        except requests.exceptions.RequestException as e:
            logger.error(f"Backend unreachable for {operation}: {str(e)}")
            return Err(FetchFailure(TRANSPORT, str(e), operation=operation))

        if not 200 <= response.status_code < 300:
            text = response.text
            logger.error(f"Backend HTTP error for {operation}: {response.status_code} - {text}")
            return Err(FetchFailure(
                PROTOCOL,
                f"API call failed: {response.status_code}",
                operation=operation,
                status_code=response.status_code,
                body=text,
            ))

        if response.status_code == 204 or not response.content:
            return Ok(None)

        try:
            return Ok(response.json())
        except (ValueError, json.JSONDecodeError) as e:
            logger.error(f"Backend returned non-JSON body for {operation}: {str(e)}")
            return Err(FetchFailure(
                SHAPE,
                "response body is not valid JSON",
                operation=operation,
                status_code=response.status_code,
                body=response.text,
            ))

    # ==================================================
    # CONVENIENCE READS
    # ==================================================

    def list_trucks(self, filters=None, page=None, limit=None) -> FetchResult:
        return self.call("list_trucks", query=build_truck_query(filters, page, limit))

    def list_appointments(self) -> FetchResult:
        return self.call("list_appointments")

    def list_warehouses(self) -> FetchResult:
        return self.call("list_warehouses")

    def list_purchase_orders(self) -> FetchResult:
        return self.call("list_purchase_orders")

    def list_shipping_orders(self) -> FetchResult:
        return self.call("list_shipping_orders")
