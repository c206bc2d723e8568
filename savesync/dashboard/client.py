# Stdlib imports
import logging
import typing

# Vendor imports
import httpx

# Local imports
from . import errors, model
from .store import TokenStore

logger = logging.getLogger(__name__)

UnauthorizedHook = typing.Callable[[], None]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])

    return response.reason_phrase or f"HTTP {response.status_code}"


class BoundaryClient:
    """
    Request/response transport to the backup backend.

    Every authenticated request carries a bearer token read fresh from the token
    store. Successful JSON responses are unwrapped from their `{"data": ...}`
    envelope. A 401 on any authenticated call fires the unauthorized hooks before
    raising, so the session is dropped globally and not only for the caller.
    """

    def __init__(
        self,
        config: model.DashboardConfiguration,
        tokens: TokenStore,
        transport: typing.Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.tokens = tokens
        self._unauthorized_hooks: list[UnauthorizedHook] = []
        self._http = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=config.timeout,
            verify=config.verify_tls,
            transport=transport,
        )

    def on_unauthorized(self, hook: UnauthorizedHook) -> None:
        self._unauthorized_hooks.append(hook)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: typing.Any = None,
        params: typing.Optional[dict[str, str]] = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        headers = {}
        if authenticated and (token := self.tokens.load()):
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._http.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.TransportError as err:
            logger.debug("%s %s failed: %s", method, path, err)
            raise errors.TransportError(f"Unable to reach the backend: {err}") from err

        logger.debug("%s %s -> %s", method, path, response.status_code)

        if response.status_code == httpx.codes.UNAUTHORIZED:
            message = _error_message(response)
            # Rejected credentials on login aren't a lost session
            if authenticated:
                for hook in list(self._unauthorized_hooks):
                    hook()
            raise errors.AuthenticationError(message)

        if response.is_error:
            raise errors.ConflictError(_error_message(response), response.status_code)

        return response

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: typing.Any = None,
        params: typing.Optional[dict[str, str]] = None,
        authenticated: bool = True,
    ) -> typing.Any:
        """Issue a call and return the unwrapped payload (None for an empty body)."""
        response = await self._send(
            method, path, json=json, params=params, authenticated=authenticated
        )

        if not response.content:
            return None

        try:
            body = response.json()
        except ValueError as err:
            raise errors.TransportError(f"Malformed response from {method} {path}") from err

        if not isinstance(body, dict) or "data" not in body:
            raise errors.TransportError(f"Missing data envelope in response from {method} {path}")

        return body["data"]

    async def download(self, path: str) -> bytes:
        """Fetch a raw file. These responses are not wrapped in an envelope."""
        response = await self._send("GET", path)
        return response.content

    async def get(self, path: str, **kwargs) -> typing.Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json: typing.Any = None, **kwargs) -> typing.Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: typing.Any = None, **kwargs) -> typing.Any:
        return await self.request("PUT", path, json=json, **kwargs)

    async def patch(self, path: str, json: typing.Any = None, **kwargs) -> typing.Any:
        return await self.request("PATCH", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs) -> typing.Any:
        return await self.request("DELETE", path, **kwargs)
