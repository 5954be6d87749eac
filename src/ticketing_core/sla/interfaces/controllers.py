"""
SLA Controllers (API Routes)
=============================

FastAPI routes for the ticket lifecycle and compliance endpoints.

Controllers are thin - they delegate to application services. Services are
built once at start-up and read from `app.state`; domain errors surface
through the application exception handler registered in main.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ticketing_core.sla.application import (
    AssignDTO,
    AutoCloseResponse,
    ComplianceMonitor,
    ComplianceReport,
    ComplianceSummaryResponse,
    ManualEscalationDTO,
    SLAService,
    StatusChangeDTO,
    TicketCreateDTO,
    TicketResponse,
    TicketService,
    TicketSLAResponse,
)
from ticketing_core.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA"])


# ========== Example payloads for Swagger ==========

TICKET_CREATE_EXAMPLE = {
    "requester_id": "2f1c6f0e-0c57-4c43-9d0a-5d1b6cbe8e11",
    "title": "VPN drops every 10 minutes",
    "priority": "HIGH",
    "sla_level": "PREMIUM",
    "category_id": "network",
    "subcategory_id": "vpn"
}

COMPLIANCE_REPORT_EXAMPLE = {
    "started_at": "2024-03-04T10:00:00Z",
    "finished_at": "2024-03-04T10:00:01Z",
    "skipped": False,
    "tickets_scanned": 42,
    "warnings_sent": 3,
    "breaches_sent": 1,
    "escalations": 1,
    "duplicates_suppressed": 2,
    "unassignable": 0,
    "failures": 0
}


# ========== Dependencies ==========

def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized"
        )
    return service


def get_ticket_service(request: Request) -> TicketService:
    """Get ticket service instance."""
    return _service(request, "ticket_service")


def get_sla_service(request: Request) -> SLAService:
    """Get SLA service instance."""
    return _service(request, "sla_service")


def get_compliance_monitor(request: Request) -> ComplianceMonitor:
    """Get compliance monitor instance."""
    return _service(request, "compliance_monitor")


# ========== Route Handlers ==========

@router.post(
    "/tickets",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a ticket",
    description="""
    Open a ticket and compute its resolution deadline in business hours.

    **Priorities**: `LOW`, `MEDIUM`, `HIGH`, `CRITICAL`

    **SLA Levels**: `STANDARD`, `PREMIUM`, `CRITICAL_SUPPORT`

    An explicit `assigned_to_id` must be an active staff account. Without
    one, and with auto-assignment enabled, the least-loaded support staff
    member is chosen.
    """,
    responses={
        201: {"description": "Ticket created"},
        400: {"description": "Invalid assignee"}
    },
    openapi_extra={"requestBody": {"content": {"application/json": {"example": TICKET_CREATE_EXAMPLE}}}}
)
async def create_ticket(
    body: TicketCreateDTO,
    ticket_service: TicketService = Depends(get_ticket_service)
):
    ticket = await ticket_service.create_ticket(body)
    return TicketResponse.from_entity(ticket)


@router.post(
    "/tickets/{ticket_id}/status",
    response_model=TicketResponse,
    summary="Change ticket status",
    description="""
    Move a ticket through its workflow.

    Illegal transitions and resolving without a resolution are rejected
    with 400. Closing records `closed_at`.
    """,
    responses={
        400: {"description": "Transition not allowed"},
        404: {"description": "Ticket not found"}
    }
)
async def change_status(
    ticket_id: str,
    body: StatusChangeDTO,
    ticket_service: TicketService = Depends(get_ticket_service)
):
    ticket = await ticket_service.change_status(ticket_id, body.status, body.resolution)
    return TicketResponse.from_entity(ticket)


@router.post(
    "/tickets/{ticket_id}/assign",
    response_model=TicketResponse,
    summary="Assign a ticket",
    responses={
        400: {"description": "Assignee is not an active staff account"},
        404: {"description": "Ticket not found"}
    }
)
async def assign_ticket(
    ticket_id: str,
    body: AssignDTO,
    ticket_service: TicketService = Depends(get_ticket_service)
):
    ticket = await ticket_service.assign_ticket(ticket_id, body.assignee_id)
    return TicketResponse.from_entity(ticket)


@router.post(
    "/tickets/{ticket_id}/escalate",
    response_model=Optional[TicketResponse],
    summary="Escalate a ticket to a support manager",
    description="""
    Raise the ticket's priority one step and reassign it to the least-loaded
    active support manager, whether or not it has breached.

    Returns `null` when no manager is available.
    """,
    responses={404: {"description": "Ticket not found"}}
)
async def escalate_ticket(
    ticket_id: str,
    body: ManualEscalationDTO,
    monitor: ComplianceMonitor = Depends(get_compliance_monitor)
):
    ticket = await monitor.manual_escalate(ticket_id, body.initiator_id)
    return TicketResponse.from_entity(ticket) if ticket else None


@router.get(
    "/tickets/{ticket_id}",
    response_model=TicketSLAResponse,
    summary="Get ticket SLA status",
    responses={404: {"description": "Ticket not found"}}
)
async def get_ticket_sla(
    ticket_id: str,
    sla_service: SLAService = Depends(get_sla_service)
):
    return await sla_service.get_ticket_sla(ticket_id)


@router.get(
    "/compliance",
    response_model=ComplianceSummaryResponse,
    summary="Get SLA compliance summary",
    description="Open and overdue ticket counts, and the share of finished tickets closed by their due date."
)
async def compliance_summary(
    sla_service: SLAService = Depends(get_sla_service)
):
    return await sla_service.compliance_summary()


@router.post(
    "/compliance/run",
    response_model=ComplianceReport,
    summary="Run a compliance pass now",
    description="""
    Run the warning, breach and escalation passes immediately.

    If a pass is already running the call returns at once with
    `skipped: true`.
    """,
    responses={
        200: {
            "description": "Pass finished",
            "content": {"application/json": {"example": COMPLIANCE_REPORT_EXAMPLE}}
        }
    }
)
async def run_compliance(
    monitor: ComplianceMonitor = Depends(get_compliance_monitor)
):
    return await monitor.run_once()


@router.post(
    "/tickets/auto-close",
    response_model=AutoCloseResponse,
    summary="Close long-resolved tickets now"
)
async def auto_close(
    ticket_service: TicketService = Depends(get_ticket_service)
):
    closed = await ticket_service.auto_close_resolved()
    return AutoCloseResponse(closed=closed)


# Export router
sla_router = router
