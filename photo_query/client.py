"""HTTP client for the photo-query service daemon.

Auto-launches the service if it's not running.
"""

import json
import logging
import subprocess
import sys
import time
from pathlib import Path

import httpx

from config import (
    SERVICE_HOST,
    SERVICE_PORT,
    SERVICE_STARTUP_TIMEOUT,
)

logger = logging.getLogger(__name__)


class ServiceClient:
    def __init__(self, base_url: str | None = None, http: httpx.Client | None = None):
        self._base_url = base_url or f"http://{SERVICE_HOST}:{SERVICE_PORT}"
        self._http = http or httpx.Client(base_url=self._base_url, timeout=600)

    def _is_alive(self) -> bool:
        try:
            resp = self._http.get("/health", timeout=2)
            return resp.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False

    def _ensure_service(self) -> None:
        if self._is_alive():
            return

        logger.info("Service not running, launching...")
        service_script = Path(__file__).resolve().parent / "service.py"
        subprocess.Popen(
            [sys.executable, str(service_script)],
            cwd=str(service_script.parent),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )

        deadline = time.time() + SERVICE_STARTUP_TIMEOUT
        while time.time() < deadline:
            time.sleep(0.5)
            if self._is_alive():
                logger.info("Service is ready")
                return

        raise RuntimeError(
            f"Service did not start within {SERVICE_STARTUP_TIMEOUT}s"
        )

    def _post(self, path: str, json: dict | None = None) -> httpx.Response:
        self._ensure_service()
        return self._http.post(path, json=json or {})

    def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        self._ensure_service()
        return self._http.get(path, params=params)

    @staticmethod
    def _loading(resp: httpx.Response) -> bool:
        return resp.status_code == 503

    # -- tool methods --

    def search(self, query: str, limit: int | None = None) -> str:
        body: dict = {"query": query}
        if limit:
            body["limit"] = limit
        resp = self._post("/search", body)
        if self._loading(resp):
            return "Service is loading, try again shortly."
        data = resp.json()
        if not data["results"]:
            return "No matching photos found."
        return json.dumps(data, indent=2)

    def status(self) -> dict:
        return self._get("/status").json()

    def build(self, index: str, limit: int | None = None) -> dict:
        path = "/build-geo" if index == "geo" else "/build-labels"
        body = {"limit": limit} if limit else {}
        resp = self._post(path, body)
        data = resp.json()
        if resp.status_code == 409:
            data["busy"] = True
        return data

    def cancel(self, index: str = "all") -> list[str]:
        return self._post("/cancel", {"index": index}).json().get("cancelled", [])

    def clear(self, index: str = "all") -> str:
        resp = self._post("/clear", {"index": index})
        data = resp.json()
        if resp.status_code == 409:
            return f"Cannot clear: {data['error']}. Cancel it first."
        if self._loading(resp):
            return "Service is loading, try again shortly."
        return f"Cleared {', '.join(data['cleared'])} index."

    def locations(self, limit: int = 20) -> list[dict]:
        resp = self._get("/locations", {"limit": str(limit)})
        if self._loading(resp):
            return []
        return resp.json()

    def health(self) -> bool:
        return self._is_alive()
