"""
HTTP client for the remote store.

The register only depends on the shape of HttpRemoteStore:

    remote.products.list(active_only=True) -> list[Product]
    remote.products.insert(product)        -> Product      (upsert by id)
    remote.products.update(id, partial)    -> None
    remote.products.set_active(id, flag)   -> None
    remote.sales.insert(header)            -> dict         (idempotent by id)
    remote.sales.get(id)                   -> Sale | None
    remote.sales.insert_items(items)       -> None         (upsert by item id)
    remote.sales.list(limit)               -> list[Sale]   (newest first)
    remote.stock_logs.insert(entry)        -> None
    remote.containers.insert(record)       -> None

Every failure, transport or HTTP status, is raised as RemoteError.
"""

from __future__ import annotations

import httpx

from .records import Product, Sale, SaleItem


class RemoteError(Exception):
    """A remote write or read did not succeed."""
    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


class _Api:
    def __init__(self, client: httpx.Client):
        self._client = client

    def _request(self, method: str, path: str, **kwargs):
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("error") if isinstance(body, dict) else None
            raise RemoteError(
                f"{method} {path} returned {response.status_code}: {message or response.text[:200]}",
                status_code=response.status_code,
                details=body.get("details") if isinstance(body, dict) else None,
            )
        if not response.content:
            return None
        return response.json()


class ProductsApi(_Api):
    def list(self, active_only: bool = True) -> list[Product]:
        data = self._request("GET", "/api/products", params={"active_only": "1" if active_only else "0"})
        return [Product.from_dict(item) for item in data["items"]]

    def insert(self, product) -> Product:
        payload = product.to_dict() if isinstance(product, Product) else dict(product)
        return Product.from_dict(self._request("POST", "/api/products", json=payload))

    def update(self, product_id: str, partial: dict) -> None:
        self._request("PATCH", f"/api/products/{product_id}", json=partial)

    def set_active(self, product_id: str, is_active: bool) -> None:
        self._request("POST", f"/api/products/{product_id}/active", json={"is_active": bool(is_active)})


class SalesApi(_Api):
    def insert(self, header: dict) -> dict:
        return self._request("POST", "/api/sales", json=header)["sale"]

    def get(self, sale_id: str) -> Sale | None:
        try:
            data = self._request("GET", f"/api/sales/{sale_id}")
        except RemoteError as exc:
            if exc.status_code == 404:
                return None
            raise
        return Sale.from_dict(data["sale"])

    def insert_items(self, items: list[SaleItem]) -> None:
        if not items:
            return
        sale_id = items[0].sale_id
        if not sale_id:
            raise RemoteError("Sale items must reference their sale id")
        payload = [item.to_dict() for item in items]
        self._request("POST", f"/api/sales/{sale_id}/items", json={"items": payload})

    def list(self, limit: int = 100) -> list[Sale]:
        data = self._request("GET", "/api/sales", params={"limit": limit})
        return [Sale.from_dict(item) for item in data["items"]]


class StockLogsApi(_Api):
    def insert(self, entry: dict) -> None:
        self._request("POST", "/api/stock-logs", json=entry)

    def get(self, log_id: str) -> dict | None:
        try:
            return self._request("GET", f"/api/stock-logs/{log_id}")
        except RemoteError as exc:
            if exc.status_code == 404:
                return None
            raise


class ContainersApi(_Api):
    def insert(self, record: dict) -> None:
        self._request("POST", "/api/outstanding-containers", json=record)

    def list(self, status: str = "pending", customer_id: str | None = None) -> list[dict]:
        params = {"status": status}
        if customer_id:
            params["customer_id"] = customer_id
        return self._request("GET", "/api/outstanding-containers", params=params)["items"]

    def mark_returned(self, outstanding_id: str, user_id: str | None = None) -> dict:
        return self._request(
            "POST", f"/api/outstanding-containers/{outstanding_id}/return", json={"user_id": user_id}
        )


class HttpRemoteStore:
    """
    Remote store over HTTP.

    Pass client= to reuse a configured httpx.Client (tests hand in one wired to
    the Flask app through httpx.WSGITransport).
    """

    def __init__(self, base_url: str = "", *, timeout: float = 10.0, client: httpx.Client | None = None):
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.products = ProductsApi(self._client)
        self.sales = SalesApi(self._client)
        self.stock_logs = StockLogsApi(self._client)
        self.containers = ContainersApi(self._client)

    def ping(self) -> bool:
        try:
            response = self._client.get("/health")
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    def close(self) -> None:
        self._client.close()
