"""
Thin HTTP transports for chain nodes.

    POST https://rpc.ankr.com/eth_sepolia   {"jsonrpc": "2.0", "method": ...}
    GET  https://lcd.hypernova.market/cosmos/...

Calls are plain ``requests`` round-trips; the async wrappers run them in a
worker thread so the event loop keeps serving sockets and timers while a
node is slow.  Transport failures surface as ``ChainUnreachable``; a node
that answers with an error object surfaces as ``RpcError``.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Optional

import requests

from hypernova.core.errors import ChainUnreachable, RpcError

_REQUEST_TIMEOUT = 10


class _HttpClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = _REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "hypernova/1.0"})
        self.logger = logger or logging.getLogger(__name__)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise ChainUnreachable(f"{method} {url} failed: {exc}") from exc

        if response.status_code >= 500:
            raise ChainUnreachable(f"{method} {url} returned HTTP {response.status_code}")
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise RpcError(str(exc), code=response.status_code, data=response.text) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise RpcError(f"{method} {url} returned a non-JSON body") from exc


class JsonRpcClient(_HttpClient):
    """
    JSON-RPC 2.0 over HTTP, as spoken by EVM and Solana nodes.

    Parameters
    ----------
    url : str
        Node endpoint.
    timeout : float
        Per-request timeout in seconds.
    session : requests.Session, optional
        Injected session (useful for testing).
    """

    def __init__(self, url: str, **kwargs) -> None:
        super().__init__(url, **kwargs)
        self._ids = itertools.count(1)

    def call_sync(self, method: str, params: Optional[list] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params if params is not None else [],
        }
        body = self._request("POST", self.base_url, json=payload)

        if not isinstance(body, dict):
            raise RpcError(f"{method}: unexpected response {body!r}")
        error = body.get("error")
        if error:
            raise RpcError(
                f"{method}: {error.get('message', error)}",
                code=error.get("code"),
                data=error.get("data"),
            )
        return body.get("result")

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        return await asyncio.to_thread(self.call_sync, method, params)


class RestClient(_HttpClient):
    """Plain REST/JSON client (Cosmos LCD, market-data API)."""

    def get_sync(self, path: str, params: Optional[dict] = None) -> Any:
        return self._request("GET", self.base_url + path, params=params)

    def post_sync(self, path: str, body: Optional[dict] = None) -> Any:
        return self._request("POST", self.base_url + path, json=body)

    async def get(self, path: str, params: Optional[dict] = None) -> Any:
        return await asyncio.to_thread(self.get_sync, path, params)

    async def post(self, path: str, body: Optional[dict] = None) -> Any:
        return await asyncio.to_thread(self.post_sync, path, body)
