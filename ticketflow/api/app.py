"""
TicketFlow Board API

FastAPI surface over a Workspace, for whatever renders the board:
- Session: login / register / logout
- Board state: scoped tickets, summary, kanban columns, notice, error
- Ticket actions: view, edit, create, update, move, delete
- Comments and profile

No rules live here. Every decision is the workspace's; this module only
maps its results onto HTTP.
"""

from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..client import RequestError, TicketflowClient
from ..config import configure_logging, get_settings
from ..errors import NotAuthenticated, TicketflowError, TicketNotFound, ValidationFailure
from ..models import (
    Comment,
    KanbanBoard,
    MoveOrigin,
    Priority,
    Role,
    StatusSummary,
    Ticket,
    TicketFormValues,
    TicketStatus,
    User,
)
from ..services.session import AuthorizationError
from ..services.visibility import ProfileStats, TicketFilter
from ..services.workspace import Workspace, WorkspaceState


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    role: Optional[Role] = None


class MoveRequest(BaseModel):
    status: TicketStatus
    origin: MoveOrigin = MoveOrigin.DRAG


class MoveResult(BaseModel):
    moved: bool
    ticket: Optional[Ticket] = None
    notice: Optional[str] = None


class EditView(BaseModel):
    ticket: Ticket
    can_edit_status: bool
    agents: List[User]


class AddCommentRequest(BaseModel):
    content: str = ""
    image_url: Optional[str] = None


class ProfileRequest(BaseModel):
    name: Optional[str] = None
    profile_image_url: Optional[str] = None


# =============================================================================
# APP SETUP
# =============================================================================

def get_workspace(request: Request) -> Workspace:
    return request.app.state.workspace


def _status_for(failure: Optional[TicketflowError], default_status: int) -> int:
    """HTTP status for the workspace's last failure."""
    if isinstance(failure, TicketNotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(failure, NotAuthenticated):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(failure, AuthorizationError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(failure, ValidationFailure):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(failure, RequestError):
        # Client errors pass through; anything upstream is a bad gateway
        if failure.status_code is not None and 400 <= failure.status_code < 500:
            return failure.status_code
        return status.HTTP_502_BAD_GATEWAY
    return default_status


def _fail(workspace: Workspace, default_status: int = status.HTTP_400_BAD_REQUEST):
    if workspace.not_found:
        code = status.HTTP_404_NOT_FOUND
    else:
        code = _status_for(workspace.failure, default_status)
    raise HTTPException(status_code=code, detail=workspace.error or "Request failed")


def create_app(workspace: Optional[Workspace] = None) -> FastAPI:
    """
    Build the board API.

    Without a workspace, one is created over a TicketflowClient configured
    from settings, and closed with the app.
    """
    owned_client = None
    if workspace is None:
        configure_logging()
        owned_client = TicketflowClient()
        workspace = Workspace(owned_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await workspace.close()
        if owned_client is not None:
            await owned_client.aclose()

    app = FastAPI(
        title="TicketFlow Board",
        description="Client-side ticket state and access control",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.workspace = workspace

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # HEALTH / STATE
    # =========================================================================

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "ticketflow-board",
            "version": "0.1.0"
        }

    @app.get("/state", response_model=WorkspaceState)
    async def get_state(ws: Workspace = Depends(get_workspace)):
        return ws.state()

    @app.get("/summary", response_model=StatusSummary)
    async def get_summary(ws: Workspace = Depends(get_workspace)):
        return ws.summary

    @app.get("/board", response_model=KanbanBoard)
    async def get_board(
        search: str = "",
        ticket_status: Optional[TicketStatus] = None,
        priority: Optional[Priority] = None,
        assigned_to: Optional[str] = None,
        created_by: Optional[int] = None,
        created_from: Optional[date] = None,
        closed_to: Optional[date] = None,
        ws: Workspace = Depends(get_workspace),
    ):
        """Kanban columns for the viewer, after the dashboard filters."""
        try:
            ticket_filter = TicketFilter(
                search=search,
                status=ticket_status,
                priority=priority,
                assigned_to=assigned_to,
                created_by=created_by,
                created_from=created_from,
                closed_to=closed_to,
            )
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
        return ws.board(ticket_filter)

    @app.get("/users", response_model=List[User])
    async def get_users(ws: Workspace = Depends(get_workspace)):
        return ws.users

    @app.get("/profile", response_model=ProfileStats)
    async def get_profile(ws: Workspace = Depends(get_workspace)):
        return ws.profile()

    # =========================================================================
    # SESSION
    # =========================================================================

    @app.post("/session/login", response_model=WorkspaceState)
    async def login(request: LoginRequest, ws: Workspace = Depends(get_workspace)):
        if await ws.login(request.email, request.password) is None:
            _fail(ws, status.HTTP_401_UNAUTHORIZED)
        return ws.state()

    @app.post("/session/register", response_model=WorkspaceState)
    async def register(request: RegisterRequest, ws: Workspace = Depends(get_workspace)):
        user = await ws.register(request.name, request.email, request.password, request.role)
        if user is None:
            _fail(ws)
        return ws.state()

    @app.post("/session/logout", status_code=status.HTTP_204_NO_CONTENT)
    async def logout(ws: Workspace = Depends(get_workspace)):
        await ws.logout()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # =========================================================================
    # TICKETS
    # =========================================================================

    @app.get("/tickets/{ticket_id}", response_model=Ticket)
    async def view_ticket(ticket_id: int, ws: Workspace = Depends(get_workspace)):
        ticket = await ws.view(ticket_id)
        if ticket is None:
            _fail(ws, status.HTTP_404_NOT_FOUND)
        return ticket

    @app.get("/tickets/{ticket_id}/edit", response_model=EditView)
    async def edit_ticket(ticket_id: int, ws: Workspace = Depends(get_workspace)):
        ticket = await ws.edit(ticket_id)
        if ticket is None:
            _fail(ws, status.HTTP_403_FORBIDDEN)
        return EditView(
            ticket=ticket,
            can_edit_status=ws.can_edit_status(ticket),
            agents=ws.agents,
        )

    @app.post("/tickets", response_model=Ticket, status_code=status.HTTP_201_CREATED)
    async def create_ticket(values: TicketFormValues, ws: Workspace = Depends(get_workspace)):
        ticket = await ws.create_ticket(values)
        if ticket is None:
            _fail(ws)
        return ticket

    @app.put("/tickets/{ticket_id}", response_model=Ticket)
    async def update_ticket(
        ticket_id: int,
        values: TicketFormValues,
        ws: Workspace = Depends(get_workspace),
    ):
        ticket = await ws.update_ticket(ticket_id, values)
        if ticket is None:
            _fail(ws)
        return ticket

    @app.post("/tickets/{ticket_id}/move", response_model=MoveResult)
    async def move_ticket(
        ticket_id: int,
        request: MoveRequest,
        ws: Workspace = Depends(get_workspace),
    ):
        """
        Move a ticket between columns.

        A refused drag is not an error: it reports moved=False.
        """
        before = ws.store.get(ticket_id)
        ticket = await ws.move_status(ticket_id, request.status, request.origin)
        if ticket is None and ws.failure is not None:
            _fail(ws, status.HTTP_403_FORBIDDEN)
        moved = ticket is not None and before is not None and before.status != ticket.status
        return MoveResult(moved=moved, ticket=ticket, notice=ws.notice)

    @app.delete("/tickets/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_ticket(ticket_id: int, ws: Workspace = Depends(get_workspace)):
        if not await ws.delete(ticket_id):
            _fail(ws, status.HTTP_403_FORBIDDEN)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # =========================================================================
    # COMMENTS / PROFILE
    # =========================================================================

    @app.get("/tickets/{ticket_id}/comments", response_model=List[Comment])
    async def list_comments(ticket_id: int, ws: Workspace = Depends(get_workspace)):
        return await ws.load_comments(ticket_id)

    @app.post(
        "/tickets/{ticket_id}/comments",
        response_model=Comment,
        status_code=status.HTTP_201_CREATED,
        responses={204: {"description": "Blank comment ignored"}},
    )
    async def add_comment(
        ticket_id: int,
        request: AddCommentRequest,
        ws: Workspace = Depends(get_workspace),
    ):
        """Add a comment. Blank text with no image is ignored (204)."""
        comment = await ws.add_comment(ticket_id, request.content, request.image_url)
        if comment is None:
            if ws.failure is not None:
                _fail(ws, status.HTTP_403_FORBIDDEN)
            return Response(status_code=status.HTTP_204_NO_CONTENT)
        return comment

    @app.patch("/profile", response_model=User)
    async def update_profile(request: ProfileRequest, ws: Workspace = Depends(get_workspace)):
        user = await ws.update_profile(request.name, request.profile_image_url)
        if user is None:
            _fail(ws)
        return user

    return app


# =============================================================================
# RUN
# =============================================================================

def main() -> None:
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "ticketflow.api.app:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
    )


if __name__ == "__main__":
    main()
