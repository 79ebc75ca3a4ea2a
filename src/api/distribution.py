"""Distribution API endpoints.

Thin HTTP layer over DistributionService:
- Undistributed percentage logs per project
- Selection and share preview (no writes)
- Percentage and maps distribution commits
- Payment fee accrual
- Payroll approval and rejection
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.services import get_async_session
from src.services.config import get_settings
from src.services.distribution_calculator import ParticipantShare
from src.services.distribution_service import DistributionService
from src.services.maps_distribution_service import MapItem, MapShare
from src.services.results import Actor, DistributionResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["distributions"])


# Request schemas
class ShareRequest(BaseModel):
    """Participant share; omit employee_id for the company."""

    employee_id: int | None = None
    percentage: Decimal
    cash_held: Decimal = Decimal("0")
    bank_held: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    note: str | None = None


class SelectionRequest(BaseModel):
    log_ids: list[int]
    currency: str | None = None


class DistributionRequest(SelectionRequest):
    participants: list[ShareRequest] = Field(default_factory=list)
    company: ShareRequest
    run_key: str | None = Field(None, max_length=64)


class MapShareRequest(BaseModel):
    employee_id: int
    percentage: Decimal


class MapItemRequest(BaseModel):
    map_type_id: int
    price: Decimal
    quantity: Decimal
    employees: list[MapShareRequest] = Field(default_factory=list)
    company_percentage: Decimal = Decimal("0")


class MapsDistributionRequest(BaseModel):
    items: list[MapItemRequest]
    payment_method: str
    currency: str | None = None
    description: str | None = None
    run_key: str | None = Field(None, max_length=64)


class PaymentFeeRequest(BaseModel):
    amount: Decimal
    payment_method: str
    expense_id: int | None = None
    payment_id: int | None = None


# Response schemas
class PercentageLogResponse(BaseModel):
    id: int
    project_id: int
    amount: Decimal
    percentage: Decimal
    distributed: bool
    expense_id: int | None = None
    payment_id: int | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SelectionResponse(BaseModel):
    """Validated selection and its proportional cash/bank split."""

    project_id: int
    currency: str
    log_ids: list[int]
    selected_total: Decimal
    selected_cash: Decimal
    selected_bank: Decimal
    cash_pool_balance: Decimal
    bank_pool_balance: Decimal
    total_pool: Decimal

    model_config = ConfigDict(from_attributes=True)


class ShareResponse(BaseModel):
    employee_id: int | None
    percentage: Decimal
    cash_amount: Decimal
    bank_amount: Decimal
    cash_held: Decimal
    bank_held: Decimal
    discount: Decimal
    total: Decimal
    net_bank: Decimal
    net_cash: Decimal
    is_negative: bool
    note: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PreviewResponse(BaseModel):
    selection: SelectionResponse
    employees: list[ShareResponse]
    company: ShareResponse
    total_discount: Decimal


class CommitResponse(BaseModel):
    success: bool
    message: str | None = None
    data: dict


class PayrollResponse(BaseModel):
    id: int
    employee_id: int
    project_id: int | None
    pay_date: date
    total_salary: Decimal
    payment_method: str
    status: str
    approved_by: int | None = None
    approved_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


def get_distribution_service(
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> DistributionService:
    return DistributionService(session, currency=get_settings().default_currency)


def get_actor(x_actor_id: int | None = Header(None, alias="X-Actor-Id")) -> Actor:  # noqa: B008
    """Resolve the acting user from the X-Actor-Id header."""
    if x_actor_id is None:
        raise HTTPException(status_code=401, detail="X-Actor-Id header required")
    return Actor(id=x_actor_id)


def _unwrap(result: DistributionResult):
    """Return result data or raise HTTPException carrying the failure."""
    if result.success:
        return result.data
    status_code = result.http_status
    if status_code >= 500:
        logger.error("Request failed with %s: %s", result.code, result.message)
    raise HTTPException(
        status_code=status_code,
        detail={
            "code": result.code,
            "message": result.message,
            "severity": result.severity,
            "failed_step": result.failed_step,
            "completed_steps": result.completed_steps,
            "details": result.details,
        },
    )


def _shares(request: DistributionRequest) -> tuple[list[ParticipantShare], ParticipantShare]:
    participants = [ParticipantShare(**share.model_dump()) for share in request.participants]
    return participants, ParticipantShare(**request.company.model_dump())


@router.get("/projects/{project_id}/percentage-logs", response_model=list[PercentageLogResponse])
async def list_percentage_logs(
    project_id: int,
    service: DistributionService = Depends(get_distribution_service),  # noqa: B008
) -> list[PercentageLogResponse]:
    """Undistributed percentage logs of a project, oldest first."""
    logs = _unwrap(await service.list_undistributed_logs(project_id))
    return [PercentageLogResponse.model_validate(log) for log in logs]


@router.post("/projects/{project_id}/distributions/selection", response_model=SelectionResponse)
async def select_logs(
    project_id: int,
    request: SelectionRequest,
    service: DistributionService = Depends(get_distribution_service),  # noqa: B008
) -> SelectionResponse:
    selection = _unwrap(await service.select_logs(project_id, request.log_ids, request.currency))
    return SelectionResponse.model_validate(selection)


@router.post("/projects/{project_id}/distributions/preview", response_model=PreviewResponse)
async def preview_distribution(
    project_id: int,
    request: DistributionRequest,
    service: DistributionService = Depends(get_distribution_service),  # noqa: B008
) -> PreviewResponse:
    """Select logs and compute every share without writing anything."""
    selection = _unwrap(await service.select_logs(project_id, request.log_ids, request.currency))
    participants, company = _shares(request)
    plan = _unwrap(await service.compute_shares(selection.pool, participants, company))
    return PreviewResponse(
        selection=SelectionResponse.model_validate(selection),
        employees=[ShareResponse.model_validate(share) for share in plan.employees],
        company=ShareResponse.model_validate(plan.company),
        total_discount=plan.total_discount,
    )


@router.post("/projects/{project_id}/distributions", response_model=CommitResponse)
async def commit_distribution(
    project_id: int,
    request: DistributionRequest,
    service: DistributionService = Depends(get_distribution_service),  # noqa: B008
    actor: Actor = Depends(get_actor),  # noqa: B008
) -> CommitResponse:
    """Commit a percentage distribution of the selected logs."""
    selection = _unwrap(await service.select_logs(project_id, request.log_ids, request.currency))
    participants, company = _shares(request)
    result = await service.commit(
        project_id, selection, participants, company, actor, run_key=request.run_key
    )
    data = _unwrap(result)
    return CommitResponse(success=True, message=result.message, data=data)


@router.post("/projects/{project_id}/maps-distributions", response_model=CommitResponse)
async def commit_maps_distribution(
    project_id: int,
    request: MapsDistributionRequest,
    service: DistributionService = Depends(get_distribution_service),  # noqa: B008
    actor: Actor = Depends(get_actor),  # noqa: B008
) -> CommitResponse:
    items = [
        MapItem(
            map_type_id=item.map_type_id,
            price=item.price,
            quantity=item.quantity,
            employees=[MapShare(share.employee_id, share.percentage) for share in item.employees],
            company_percentage=item.company_percentage,
        )
        for item in request.items
    ]
    result = await service.commit_maps(
        project_id,
        items,
        request.payment_method,
        actor,
        currency=request.currency,
        description=request.description,
        run_key=request.run_key,
    )
    data = _unwrap(result)
    return CommitResponse(success=True, message=result.message, data=data)


@router.post(
    "/projects/{project_id}/payment-fees", response_model=PercentageLogResponse, status_code=201
)
async def record_payment_fee(
    project_id: int,
    request: PaymentFeeRequest,
    service: DistributionService = Depends(get_distribution_service),  # noqa: B008
    actor: Actor = Depends(get_actor),  # noqa: B008
) -> PercentageLogResponse:
    """Accrue the company percentage of a payment into the project's pool."""
    log = _unwrap(
        await service.record_payment_fee(
            project_id,
            request.amount,
            request.payment_method,
            actor,
            expense_id=request.expense_id,
            payment_id=request.payment_id,
        )
    )
    return PercentageLogResponse.model_validate(log)


@router.post("/payroll/{payroll_id}/accept", response_model=PayrollResponse)
async def accept_payroll(
    payroll_id: int,
    service: DistributionService = Depends(get_distribution_service),  # noqa: B008
    actor: Actor = Depends(get_actor),  # noqa: B008
) -> PayrollResponse:
    entry = _unwrap(await service.accept_payroll(payroll_id, actor))
    return PayrollResponse.model_validate(entry)


@router.post("/payroll/{payroll_id}/reject", response_model=PayrollResponse)
async def reject_payroll(
    payroll_id: int,
    service: DistributionService = Depends(get_distribution_service),  # noqa: B008
    actor: Actor = Depends(get_actor),  # noqa: B008
) -> PayrollResponse:
    entry = _unwrap(await service.reject_payroll(payroll_id, actor))
    return PayrollResponse.model_validate(entry)


__all__ = ["router", "get_actor", "get_distribution_service"]
