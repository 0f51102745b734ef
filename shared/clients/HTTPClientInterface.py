from abc import abstractmethod

import httpx
from httpx._types import QueryParamTypes, RequestContent

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions.ReconciliationErrors import StoreUnavailable
from shared.helper.HelperConfig import HelperConfig


class HTTPClientInterface(ClientInterface):
    """Base for adapters that talk to their backend over HTTP via httpx."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._client: httpx.AsyncClient | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """
        Returns the authentication header for the backend server, if an API key is set.

        Returns:
            dict: A dictionary containing the auth data
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """
        Returns the base URL of the backend server (e.g. "http://localhost:6333").
        """
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """
        Returns the endpoint path for healthcheck requests (e.g. "/healthz").
        """
        pass

    ##########################################
    ############## LIFECYCLE #################
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialise the HTTP client.

        Args:
            transport: Optional custom transport, e.g. httpx.MockTransport.
        """
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_healthcheck(self) -> None:
        await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck(), raise_on_error=True)

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def do_request(
        self,
        method: str = "GET",
        content: RequestContent | None = None,
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send an HTTP request to the backend.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, …).
            content: Raw bytes body. The caller passes the Content-Type via additional_headers.
            json: JSON-serialisable body (sets Content-Type automatically).
            params: URL query parameters.
            endpoint: Path to append to the base URL (leading slash optional).
            additional_headers: Extra headers that override the defaults.
            raise_on_error: Raise on any non-2xx status.

        Returns:
            The raw httpx.Response.

        Raises:
            StoreUnavailable: If the backend cannot be reached or answers with a 5xx status.
            Exception: If the client is not booted, or on any other non-2xx status when raise_on_error is True.
        """
        if self._client is None:
            raise Exception("HTTP client not initialised. Call boot() before making requests.")

        endpoint = "/" + endpoint.strip().lstrip("/") if endpoint.strip() else ""
        url = f"{self._get_base_url().rstrip('/')}{endpoint}"

        headers: dict = {}
        headers.update(self._get_auth_header())
        if additional_headers:
            headers.update(additional_headers)

        kwargs: dict = {"url": url, "headers": headers, "params": params}
        if content is not None:
            kwargs["content"] = content
        elif json is not None:
            kwargs["json"] = json

        try:
            response = await self._client.request(method, **kwargs)
        except httpx.TransportError as exc:
            self.logging.error("Request to %s could not be sent: %s", url, exc)
            raise StoreUnavailable(self.get_client_type(), f"{self.get_engine_name()} at {url} is unreachable", exc) from exc

        if response.status_code >= 500:
            self.logging.error("Request to %s failed with status %d: %s", url, response.status_code, response.text)
            raise StoreUnavailable(self.get_client_type(), f"{self.get_engine_name()} answered {response.status_code}")

        if raise_on_error and response.status_code >= 300:
            self.logging.error("Request to %s failed with status %d: %s", url, response.status_code, response.text)
            raise Exception(f"Request to {url} failed with status {response.status_code}")

        return response
