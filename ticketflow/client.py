"""
TicketFlow request layer.

Thin async HTTP wrapper around the TicketFlow REST API. No business rules:
it sends what it is given and parses what comes back.

The bearer token is passed into every call by the caller (the session holds
it); the client itself keeps no credential between calls.
"""

import logging
from typing import Any, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from .config import get_settings
from .errors import TicketflowError
from .models import (
    AuthResponse,
    Comment,
    CommentInput,
    ProfileUpdate,
    RegisterInput,
    Role,
    Ticket,
    TicketInput,
    TicketUpdate,
    User,
)

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Request failed"


class RequestError(TicketflowError):
    """Raised when the server answers with a non-success status or garbage."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TicketApi(Protocol):
    """
    What the services need from the request layer.

    TicketflowClient implements it over HTTP. Every call takes the
    credential explicitly.
    """

    async def login(self, email: str, password: str) -> AuthResponse: ...

    async def register(
        self, name: str, email: str, password: str, role: Optional[Role] = None
    ) -> AuthResponse: ...

    async def me(self, token: Optional[str] = None) -> User: ...

    async def get_users(self, token: Optional[str] = None) -> List[User]: ...

    async def update_my_profile(self, partial: ProfileUpdate, token: Optional[str] = None) -> User: ...

    async def create_user(self, payload: RegisterInput, token: Optional[str] = None) -> User: ...

    async def get_tickets(self, token: Optional[str] = None) -> List[Ticket]: ...

    async def get_ticket_by_id(self, ticket_id: int, token: Optional[str] = None) -> Ticket: ...

    async def create_ticket(self, payload: TicketInput, token: Optional[str] = None) -> Ticket: ...

    async def update_ticket(
        self, ticket_id: int, partial: TicketUpdate, token: Optional[str] = None
    ) -> Ticket: ...

    async def delete_ticket(self, ticket_id: int, token: Optional[str] = None) -> None: ...

    async def get_ticket_comments(
        self, ticket_id: int, token: Optional[str] = None
    ) -> List[Comment]: ...

    async def create_ticket_comment(
        self, ticket_id: int, payload: CommentInput, token: Optional[str] = None
    ) -> Comment: ...


class TicketflowClient:
    """Async client for the TicketFlow API. Implements TicketApi."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.API_URL).rstrip("/")
        self.timeout = timeout_seconds or settings.REQUEST_TIMEOUT_SECONDS
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _get_headers(self, token: Optional[str]) -> dict:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        body: Optional[dict] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Returns None for 204 No Content. Raises RequestError carrying the
        server's "message" field for any non-2xx response.
        """
        logger.debug(f"{method} {path}")
        try:
            response = await self._http.request(
                method, path, json=body, headers=self._get_headers(token)
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise RequestError(str(e) or DEFAULT_ERROR_MESSAGE) from e

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            message = DEFAULT_ERROR_MESSAGE
            if isinstance(payload, dict) and payload.get("message"):
                message = str(payload["message"])
            logger.warning(f"{method} {path} -> {response.status_code}: {message}")
            raise RequestError(message, status_code=response.status_code)

        if response.status_code == 204:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise RequestError(f"Invalid JSON from {path}", response.status_code) from e

    @staticmethod
    def _parse(model, payload):
        try:
            if isinstance(payload, list):
                return [model.model_validate(item) for item in payload]
            return model.model_validate(payload)
        except ValidationError as e:
            raise RequestError(f"Unexpected {model.__name__} payload: {e.error_count()} errors") from e

    # =========================================================================
    # Auth
    # =========================================================================

    async def login(self, email: str, password: str) -> AuthResponse:
        data = await self._request(
            "POST", "/auth/login", body={"email": email, "password": password}
        )
        return self._parse(AuthResponse, data)

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        role: Optional[Role] = None,
    ) -> AuthResponse:
        payload = RegisterInput(name=name, email=email, password=password)
        if role is not None:
            payload.role = role
        data = await self._request("POST", "/auth/register", body=payload.to_wire())
        return self._parse(AuthResponse, data)

    async def me(self, token: Optional[str] = None) -> User:
        return self._parse(User, await self._request("GET", "/auth/me", token))

    # =========================================================================
    # Users
    # =========================================================================

    async def get_users(self, token: Optional[str] = None) -> List[User]:
        return self._parse(User, await self._request("GET", "/users", token))

    async def update_my_profile(
        self, partial: ProfileUpdate, token: Optional[str] = None
    ) -> User:
        data = await self._request("PATCH", "/users/me", token, partial.to_wire())
        return self._parse(User, data)

    async def create_user(
        self, payload: RegisterInput, token: Optional[str] = None
    ) -> User:
        data = await self._request("POST", "/users", token, payload.to_wire())
        return self._parse(User, data)

    # =========================================================================
    # Tickets
    # =========================================================================

    async def get_tickets(self, token: Optional[str] = None) -> List[Ticket]:
        return self._parse(Ticket, await self._request("GET", "/tickets", token))

    async def get_ticket_by_id(self, ticket_id: int, token: Optional[str] = None) -> Ticket:
        data = await self._request("GET", f"/tickets/{ticket_id}", token)
        return self._parse(Ticket, data)

    async def create_ticket(self, payload: TicketInput, token: Optional[str] = None) -> Ticket:
        data = await self._request("POST", "/tickets", token, payload.to_wire())
        return self._parse(Ticket, data)

    async def update_ticket(
        self, ticket_id: int, partial: TicketUpdate, token: Optional[str] = None
    ) -> Ticket:
        data = await self._request("PUT", f"/tickets/{ticket_id}", token, partial.to_wire())
        return self._parse(Ticket, data)

    async def delete_ticket(self, ticket_id: int, token: Optional[str] = None) -> None:
        await self._request("DELETE", f"/tickets/{ticket_id}", token)

    # =========================================================================
    # Comments
    # =========================================================================

    async def get_ticket_comments(
        self, ticket_id: int, token: Optional[str] = None
    ) -> List[Comment]:
        data = await self._request("GET", f"/tickets/{ticket_id}/comments", token)
        return self._parse(Comment, data)

    async def create_ticket_comment(
        self, ticket_id: int, payload: CommentInput, token: Optional[str] = None
    ) -> Comment:
        data = await self._request(
            "POST", f"/tickets/{ticket_id}/comments", token, payload.to_wire()
        )
        return self._parse(Comment, data)
