"""Report PDF retrieval: server-side proxy and the client used by the sign action."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from .errors import FetchError, ReportUnavailableError
from .logging import get_logger

logger = get_logger(__name__)

REPORT_PARAMS = ("PRPT", "POBJ", "POBJORI", "PCLE", "WSIGN", "PIMPRIMANTE")
FALLBACK_REPORT = {"remito": "ZREMITOAI"}


def parse_coordinates(raw: Any) -> Optional[Dict[str, Any]]:
    """Decode the signature coordinates sent by the report generator.

    The generator is known to emit stray commas (``"x":",12``); those are
    cleaned before decoding. Undecodable values yield None.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, dict):
        return raw
    cleaned = re.sub(r'":"?,', '":"', re.sub(r'":","', '":"', str(raw)))
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("coordinates_unparseable", value=str(raw)[:200])
        return None


class ReportProxy:
    """Forwards /proxy-getrpt requests to the upstream report generator."""

    def __init__(
        self,
        base_url: Optional[str],
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    async def fetch(self, params: Mapping[str, str]) -> Dict[str, Any]:
        if not self.base_url:
            raise ReportUnavailableError("REPORT_SERVICE_URL is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.base_url, params=dict(params))
        except httpx.RequestError as exc:
            logger.error("report_proxy_connection_error", error=str(exc))
            raise ReportUnavailableError(f"Report service connection error: {exc}") from exc

        if response.status_code != 200:
            logger.error("report_proxy_upstream_error", status=response.status_code)
            raise ReportUnavailableError(f"Report service error: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ReportUnavailableError("Report service returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise ReportUnavailableError("Report service returned an unexpected payload")

        pdf_base64 = payload.get("pdfBase64") or payload.get("PRPT64")
        if not pdf_base64:
            raise ReportUnavailableError("PDF data not found in report response")

        return {
            "success": True,
            "pdfBase64": pdf_base64,
            "coordinates": parse_coordinates(payload.get("coordinates", payload.get("PXY"))),
            "filename": f"{params['PCLE']}.pdf",
        }


@dataclass(slots=True)
class SignablePdf:
    base64: str
    filename: str
    remito: str
    coordinates: Optional[Dict[str, Any]] = None


@dataclass(slots=True)
class SigningSession:
    """Everything the signing view needs for one remito."""

    remito: Dict[str, str]
    pdf: SignablePdf
    url: str = field(init=False)

    def __post_init__(self) -> None:
        self.url = f"/firmar/{self.pdf.remito}"


class ReportClient:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client
        self._report: Optional[Dict[str, Any]] = None

    async def report_config(self) -> Dict[str, Any]:
        """Report settings from the server, cached; falls back to the default report."""
        if self._report is not None:
            return self._report
        try:
            response = await self.client.get("/api/config/report")
            response.raise_for_status()
            self._report = dict(response.json()["report"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning("report_config_fallback", error=str(exc))
            return dict(FALLBACK_REPORT)
        return self._report

    async def retrieve(self, remito: str) -> SignablePdf:
        report = await self.report_config()
        params = {
            "PRPT": report.get("remito", FALLBACK_REPORT["remito"]),
            "POBJ": "SDH",
            "POBJORI": "SDH",
            "PCLE": remito,
            "WSIGN": "2",
            "PIMPRIMANTE": "WSPRINT",
        }
        try:
            response = await self.client.get("/proxy-getrpt", params=params)
        except httpx.HTTPError as exc:
            raise FetchError(f"Error: {exc}") from exc
        if response.status_code != 200:
            raise FetchError(f"Error: {response.status_code} {response.reason_phrase}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError("PDF data not received from server") from exc
        if not isinstance(payload, dict) or not payload.get("success") or not payload.get("pdfBase64"):
            raise FetchError("PDF data not received from server")

        return SignablePdf(
            base64=payload["pdfBase64"],
            filename=payload.get("filename") or f"{remito}.pdf",
            remito=remito,
            coordinates=payload.get("coordinates"),
        )
