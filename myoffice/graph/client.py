"""Authenticated Microsoft Graph transport (async, httpx).

Every call fetches a token from the session manager, maps non-2xx responses
to HttpError and connection failures to NetworkError. Nothing is retried
here; retry policy belongs to the caller.
"""

import asyncio
import time
from typing import Any, Callable, Optional, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from myoffice.auth import DeviceCodePresenter, get_session_manager
from myoffice.config import (
    CONNECTIVITY_TIMEOUT_SECONDS,
    GRAPH_BASE_URL,
    GRAPH_TIMEOUT_SECONDS,
    AuthSettings,
)
from myoffice.errors import HttpError, MyOfficeError, NetworkError, TransportError, UploadSessionError
from myoffice.graph.models import (
    ConnectivityReport,
    GraphErrorBody,
    GraphPage,
    UploadProgress,
    UploadSession,
)
from myoffice.utils.logger import get_logger

logger = get_logger("myoffice.graph.client")

# Resumable upload chunks must be a multiple of 320 KiB
UPLOAD_CHUNK_ALIGNMENT = 320 * 1024
CHUNK_SIZE = UPLOAD_CHUNK_ALIGNMENT * 10  # 3.2 MB

DEFAULT_MAX_ITEMS = 100

ProgressCallback = Callable[[int, int], None]


class TokenProvider(Protocol):
    """Anything that can hand out a bearer token (SessionManager in production)."""

    async def get_access_token(self) -> str:
        ...


def _http_error(response: httpx.Response) -> HttpError:
    """Prefer error.message from a Graph error body, else the raw text."""
    text = response.text
    code = None
    message = text or response.reason_phrase
    try:
        detail = GraphErrorBody.model_validate_json(text).error
        code = detail.code
        message = detail.message or message
    except ValidationError:
        pass
    return HttpError(response.status_code, message, code=code)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    # 204 No Content / 202 Accepted (e.g. sendMail) carry no body
    if response.status_code in (202, 204) or not response.content:
        return {}
    try:
        return response.json()
    except ValueError as e:
        raise TransportError(f"Invalid JSON in Graph response ({response.status_code})") from e


class GraphClient:
    """Graph REST client: request, bounded pagination and the two upload paths."""

    def __init__(
        self,
        token_provider: TokenProvider,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = GRAPH_BASE_URL,
    ):
        self._tokens = token_provider
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(GRAPH_TIMEOUT_SECONDS),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )
        self._base_url = base_url.rstrip("/")

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _url(self, path: str) -> str:
        # nextLink cursors and upload session URLs are already absolute
        if path.startswith(("https://", "http://")):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self._base_url}{path}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.warning("graph_client.network_error", method=method, url=url, error=str(e))
            raise NetworkError(f"{method} {url} failed: {e}") from e

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._tokens.get_access_token()
        return {"Authorization": f"Bearer {token}"}

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Issue one authenticated JSON call and return the decoded body ({} when empty)."""
        request_headers = {
            **(await self._auth_headers()),
            "Content-Type": "application/json",
            **(headers or {}),
        }
        kwargs: dict[str, Any] = {"headers": request_headers}
        if body is not None:
            kwargs["json"] = body
        if params:
            kwargs["params"] = params
        response = await self._send(method, self._url(path), **kwargs)
        logger.debug("graph_client.request", method=method, path=path, status=response.status_code)
        if not response.is_success:
            raise _http_error(response)
        return _json_body(response)

    async def list_items(
        self,
        path: str,
        max_items: int = DEFAULT_MAX_ITEMS,
        model: Optional[type[BaseModel]] = None,
    ) -> list[Any]:
        """Follow @odata.nextLink until the collection ends or max_items is reached.

        The cursor is abandoned as soon as the bound is met, and the final page
        is truncated, so at most max_items are returned. Each call starts a
        fresh walk from path.
        """
        items: list[Any] = []
        next_link: Optional[str] = path
        pages = 0
        while next_link and len(items) < max_items:
            body = await self.request(next_link)
            try:
                page = GraphPage.model_validate(body)
            except ValidationError as e:
                raise TransportError(f"Malformed collection page from {next_link}") from e
            items.extend(page.value)
            next_link = page.next_link
            pages += 1
        items = items[:max_items]
        logger.debug("graph_client.list", path=path, pages=pages, count=len(items))
        if model is not None:
            try:
                return [model.model_validate(item) for item in items]
            except ValidationError as e:
                raise TransportError(f"Collection item does not match {model.__name__}") from e
        return items

    async def upload_simple(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Single PUT of the whole payload. Intended for payloads under 4 MiB."""
        headers = {**(await self._auth_headers()), "Content-Type": content_type}
        response = await self._send("PUT", self._url(path), headers=headers, content=content)
        if not response.is_success:
            raise _http_error(response)
        logger.info("graph_client.upload_simple", path=path, size=len(content))
        return _json_body(response)

    async def _create_upload_session(self, path: str) -> UploadSession:
        url = self._url(f"{path}:/createUploadSession")
        headers = {**(await self._auth_headers()), "Content-Type": "application/json"}
        body = {"item": {"@microsoft.graph.conflictBehavior": "rename"}}
        try:
            response = await self._send("POST", url, headers=headers, json=body)
        except NetworkError as e:
            raise UploadSessionError(f"Failed to create upload session: {e}") from e
        if not response.is_success:
            error = _http_error(response)
            raise UploadSessionError(
                f"Failed to create upload session: {error.message}",
                status=response.status_code,
            )
        try:
            return UploadSession.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UploadSessionError("Upload session response has no uploadUrl") from e

    async def upload_resumable(
        self,
        path: str,
        content: bytes,
        on_progress: Optional[ProgressCallback] = None,
        chunk_size: int = CHUNK_SIZE,
    ) -> dict[str, Any]:
        """Upload through a resumable session, one chunk at a time in offset order.

        The final chunk's response carries the created item's metadata. Any
        failed chunk aborts the upload; the session is not resumed, so a retry
        starts again from byte zero.
        """
        if chunk_size <= 0 or chunk_size % UPLOAD_CHUNK_ALIGNMENT:
            raise ValueError(f"chunk_size must be a positive multiple of {UPLOAD_CHUNK_ALIGNMENT}")
        if not content:
            raise ValueError("Resumable upload needs a non-empty payload")

        session = await self._create_upload_session(path)
        progress = UploadProgress(
            session_url=session.upload_url,
            total_size=len(content),
            chunk_size=chunk_size,
        )
        log = logger.bind(path=path, total=progress.total_size)
        log.info("graph_client.upload_session.created")

        while True:
            start, end = progress.next_range()
            # The session URL is pre-authorized; no bearer token on chunk PUTs
            headers = {"Content-Range": progress.content_range()}
            try:
                response = await self._http.put(
                    progress.session_url,
                    headers=headers,
                    content=content[start:end + 1],
                )
            except httpx.RequestError as e:
                log.warning("graph_client.upload_chunk.network_error", offset=start, error=str(e))
                raise UploadSessionError(f"Upload chunk failed: {e}", offset=start) from e
            if not response.is_success:
                error = _http_error(response)
                log.warning("graph_client.upload_chunk.failed", offset=start, status=response.status_code)
                raise UploadSessionError(
                    f"Upload chunk failed: {error.message}",
                    status=response.status_code,
                    offset=start,
                )

            progress.uploaded_bytes = end + 1
            if on_progress:
                on_progress(progress.uploaded_bytes, progress.total_size)
            if progress.done:
                log.info("graph_client.upload_session.completed")
                return _json_body(response)

    async def check_connectivity(
        self,
        timeout: float = CONNECTIVITY_TIMEOUT_SECONDS,
    ) -> ConnectivityReport:
        """GET /me with a hard timeout. Never raises; failures are reported."""
        started = time.monotonic()
        try:
            me = await asyncio.wait_for(self.request("/me"), timeout=timeout)
        except asyncio.TimeoutError:
            return ConnectivityReport(status="FAILED", error=f"Timeout after {timeout:g} seconds")
        except MyOfficeError as e:
            return ConnectivityReport(status="FAILED", error=str(e))
        return ConnectivityReport(
            status="OK",
            response_time_ms=int((time.monotonic() - started) * 1000),
            user=me.get("userPrincipalName") or me.get("mail"),
        )


def create_graph_client(
    settings: Optional[AuthSettings] = None,
    present_device_code: Optional[DeviceCodePresenter] = None,
) -> GraphClient:
    """Composition root: one SessionManager and one GraphClient per process."""
    session = get_session_manager(settings, present_device_code=present_device_code)
    return GraphClient(session)
