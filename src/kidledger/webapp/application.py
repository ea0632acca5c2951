"""FastAPI adapter exposing kidledger operations as JSON routes.

Identity is resolved upstream; every request carries the already-authenticated
actor in ``X-Actor-*`` headers. Run with
``uvicorn --factory kidledger.webapp:create_app``.
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette import status

from ..exceptions import (
    BudgetExceededError,
    ConcurrencyConflictError,
    InsufficientFundsError,
    InvalidStateError,
    KidLedgerError,
    NotFoundError,
    UnauthorizedError,
)
from ..models import (
    Actor,
    ActorRole,
    BudgetPeriod,
    CompletionStatus,
    SavingsTransferPolicy,
    TaskStatus,
    TransactionCategory,
    TransactionDirection,
)
from ..schedule import RecurrenceRule, RecurrenceType, Weekday
from ..service import KidLedger


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------
def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def serialize(item: Any) -> Any:
    if is_dataclass(item) and not isinstance(item, type):
        return _plain(asdict(item))
    if isinstance(item, (list, tuple)):
        return [serialize(entry) for entry in item]
    return _plain(item)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class OpenAccountBody(BaseModel):
    name: str
    weekly_allowance: Decimal = Decimal("0")
    allowance_day: Optional[Weekday] = None
    allow_debt: bool = False
    starting_balance: Decimal = Decimal("0")


class AccountSettingsBody(BaseModel):
    allow_debt: Optional[bool] = None
    allowance_day: Optional[Weekday] = None
    rolling_allowance: bool = False
    savings_policy: Optional[SavingsTransferPolicy] = None
    savings_transfer_amount: Optional[Decimal] = None
    savings_transfer_percent: Optional[int] = Field(default=None, ge=0, le=100)


class TransactionBody(BaseModel):
    amount: Decimal
    direction: TransactionDirection
    category: Optional[TransactionCategory] = None
    description: str
    draw_from_savings: bool = False
    notes: Optional[str] = None


class AmountBody(BaseModel):
    amount: Decimal


class BudgetBody(BaseModel):
    limit: Decimal
    period: BudgetPeriod = BudgetPeriod.WEEKLY
    alert_threshold_percent: Optional[int] = Field(default=None, ge=0, le=100)
    enforce_limit: bool = False


class ReasonBody(BaseModel):
    reason: Optional[str] = None


class AllowanceAmountBody(BaseModel):
    amount: Decimal
    reason: Optional[str] = None


class RecurrenceBody(BaseModel):
    type: RecurrenceType
    weekday: Optional[Weekday] = None
    day_of_month: Optional[int] = None

    def to_rule(self) -> RecurrenceRule:
        return RecurrenceRule(self.type, weekday=self.weekday, day_of_month=self.day_of_month)


class TaskBody(BaseModel):
    title: str
    reward_amount: Decimal = Decimal("0")
    description: str = ""
    recurrence: Optional[RecurrenceBody] = None


class TaskUpdateBody(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    reward_amount: Optional[Decimal] = None


class CompletionBody(BaseModel):
    notes: Optional[str] = None
    photo_url: Optional[str] = None


class ReviewBody(BaseModel):
    approve: bool
    reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_bank(request: Request) -> KidLedger:
    return request.app.state.bank


def get_actor(
    x_actor_id: str = Header(...),
    x_actor_role: ActorRole = Header(...),
    x_family_id: Optional[str] = Header(None),
    x_account_id: Optional[int] = Header(None),
) -> Actor:
    return Actor(actor_id=x_actor_id, role=x_actor_role, family_id=x_family_id, account_id=x_account_id)


_UNPROCESSABLE = 422


def _error(status_code: int, exc: Exception, **extra: Any) -> JSONResponse:
    payload: Dict[str, Any] = {"detail": str(exc), "error": type(exc).__name__}
    payload.update(_plain(extra))
    return JSONResponse(status_code=status_code, content=payload)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(UnauthorizedError)
    async def _unauthorized(request: Request, exc: UnauthorizedError) -> JSONResponse:
        return _error(status.HTTP_403_FORBIDDEN, exc)

    @app.exception_handler(InvalidStateError)
    async def _invalid_state(request: Request, exc: InvalidStateError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(ConcurrencyConflictError)
    async def _conflict(request: Request, exc: ConcurrencyConflictError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(InsufficientFundsError)
    async def _insufficient(request: Request, exc: InsufficientFundsError) -> JSONResponse:
        return _error(_UNPROCESSABLE, exc)

    @app.exception_handler(BudgetExceededError)
    async def _budget(request: Request, exc: BudgetExceededError) -> JSONResponse:
        return _error(
            _UNPROCESSABLE,
            exc,
            category=exc.category,
            current_spending=exc.current_spending,
            limit=exc.limit,
            overage=exc.overage,
        )

    @app.exception_handler(KidLedgerError)
    async def _ledger_error(request: Request, exc: KidLedgerError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc)

    @app.exception_handler(ValueError)
    async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc)


def _require_system(actor: Actor) -> None:
    if not actor.is_system:
        raise UnauthorizedError("Only the scheduler may trigger batch jobs.")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(bank: Optional[KidLedger] = None) -> FastAPI:
    app = FastAPI(title="Kid Ledger")
    app.state.bank = bank or KidLedger.from_settings()
    _install_error_handlers(app)

    # Accounts ------------------------------------------------------------
    @app.post("/families/{family_id}/accounts", status_code=status.HTTP_201_CREATED)
    def open_account(
        family_id: str,
        body: OpenAccountBody,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        account = bank.open_account(
            actor,
            body.name,
            family_id=family_id,
            weekly_allowance=body.weekly_allowance,
            allowance_day=body.allowance_day,
            allow_debt=body.allow_debt,
            starting_balance=body.starting_balance,
        )
        return serialize(account)

    @app.get("/families/{family_id}/accounts")
    def family_accounts(family_id: str, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.get_family_accounts(actor, family_id))

    @app.get("/accounts/{account_id}")
    def get_account(account_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.get_account(actor, account_id))

    @app.patch("/accounts/{account_id}/settings")
    def configure_account(
        account_id: int,
        body: AccountSettingsBody,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        changes: Dict[str, Any] = {
            key: value
            for key, value in {
                "allow_debt": body.allow_debt,
                "savings_policy": body.savings_policy,
                "savings_transfer_amount": body.savings_transfer_amount,
                "savings_transfer_percent": body.savings_transfer_percent,
            }.items()
            if value is not None
        }
        if body.rolling_allowance:
            changes["allowance_day"] = None
        elif body.allowance_day is not None:
            changes["allowance_day"] = body.allowance_day
        return serialize(bank.configure_account(actor, account_id, **changes))

    @app.get("/accounts/{account_id}/balance")
    def get_balance(account_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return {"account_id": account_id, "balance": str(bank.get_balance(actor, account_id))}

    # Transactions --------------------------------------------------------
    @app.get("/accounts/{account_id}/transactions")
    def list_transactions(
        account_id: int,
        limit: Optional[int] = Query(None, ge=1, le=500),
        offset: int = Query(0, ge=0),
        category: Optional[TransactionCategory] = None,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        entries = bank.get_account_transactions(actor, account_id, limit=limit, offset=offset, category=category)
        return serialize(entries)

    @app.post("/accounts/{account_id}/transactions", status_code=status.HTTP_201_CREATED)
    def create_transaction(
        account_id: int,
        body: TransactionBody,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        category = body.category or bank.suggest_category(body.description, body.direction)
        entry = bank.create_transaction(
            actor,
            account_id,
            body.amount,
            body.direction,
            category,
            body.description,
            draw_from_savings=body.draw_from_savings,
            notes=body.notes,
        )
        return serialize(entry)

    @app.get("/categories/suggest")
    def suggest(text: str, direction: TransactionDirection = TransactionDirection.DEBIT) -> Any:
        return {"category": KidLedger.suggest_category(text, direction).value}

    # Savings -------------------------------------------------------------
    @app.get("/accounts/{account_id}/savings")
    def savings_history(account_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.get_savings_transactions(actor, account_id))

    @app.post("/accounts/{account_id}/savings/deposit", status_code=status.HTTP_201_CREATED)
    def savings_deposit(
        account_id: int, body: AmountBody, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)
    ) -> Any:
        return serialize(bank.transfer_to_savings(actor, account_id, body.amount))

    @app.post("/accounts/{account_id}/savings/withdraw", status_code=status.HTTP_201_CREATED)
    def savings_withdraw(
        account_id: int, body: AmountBody, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)
    ) -> Any:
        return serialize(bank.withdraw_from_savings(actor, account_id, body.amount))

    # Budgets -------------------------------------------------------------
    @app.get("/accounts/{account_id}/budgets")
    def list_budgets(account_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.get_budgets(actor, account_id))

    @app.get("/accounts/{account_id}/budget-status")
    def budget_status(account_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.get_budget_statuses(actor, account_id))

    @app.get("/accounts/{account_id}/budgets/{category}")
    def get_budget(
        account_id: int,
        category: TransactionCategory,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        return serialize(bank.get_budget(actor, account_id, category))

    @app.put("/accounts/{account_id}/budgets/{category}")
    def set_budget(
        account_id: int,
        category: TransactionCategory,
        body: BudgetBody,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        budget = bank.set_budget(
            actor,
            account_id,
            category,
            body.limit,
            period=body.period,
            alert_threshold_percent=body.alert_threshold_percent,
            enforce_limit=body.enforce_limit,
        )
        return serialize(budget)

    @app.delete("/accounts/{account_id}/budgets/{category}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_budget(
        account_id: int,
        category: TransactionCategory,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> None:
        bank.delete_budget(actor, account_id, category)

    @app.post("/accounts/{account_id}/budgets/{category}/check")
    def check_budget(
        account_id: int,
        category: TransactionCategory,
        body: AmountBody,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        return serialize(bank.check_budget(actor, account_id, category, body.amount))

    # Allowances ----------------------------------------------------------
    @app.post("/accounts/{account_id}/allowance/pay", status_code=status.HTTP_201_CREATED)
    def pay_allowance(account_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.pay_weekly_allowance(actor, account_id))

    @app.post("/accounts/{account_id}/allowance/pause")
    def pause_allowance(
        account_id: int, body: ReasonBody, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)
    ) -> Any:
        return serialize(bank.pause_allowance(actor, account_id, body.reason))

    @app.post("/accounts/{account_id}/allowance/resume")
    def resume_allowance(
        account_id: int, body: ReasonBody, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)
    ) -> Any:
        return serialize(bank.resume_allowance(actor, account_id, body.reason))

    @app.put("/accounts/{account_id}/allowance/amount")
    def adjust_allowance(
        account_id: int,
        body: AllowanceAmountBody,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        return serialize(bank.adjust_allowance_amount(actor, account_id, body.amount, body.reason))

    @app.get("/accounts/{account_id}/allowance/history")
    def allowance_history(account_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.get_adjustment_history(actor, account_id))

    @app.post("/jobs/allowances")
    def process_allowances(actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        _require_system(actor)
        return serialize(bank.process_all_pending_allowances())

    # Tasks ---------------------------------------------------------------
    @app.post("/accounts/{account_id}/tasks", status_code=status.HTTP_201_CREATED)
    def create_task(
        account_id: int, body: TaskBody, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)
    ) -> Any:
        task = bank.create_task(
            actor,
            account_id,
            body.title,
            body.reward_amount,
            description=body.description,
            recurrence=body.recurrence.to_rule() if body.recurrence else None,
        )
        return serialize(task)

    @app.get("/accounts/{account_id}/task-statistics")
    def task_statistics(account_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.get_task_statistics(actor, account_id))

    @app.get("/tasks")
    def list_tasks(
        account_id: Optional[int] = None,
        status_filter: Optional[TaskStatus] = Query(None, alias="status"),
        recurring: Optional[bool] = None,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        return serialize(bank.get_tasks(actor, account_id=account_id, status=status_filter, recurring=recurring))

    @app.get("/tasks/{task_id}")
    def get_task(task_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.get_task(actor, task_id))

    @app.patch("/tasks/{task_id}")
    def update_task(
        task_id: int, body: TaskUpdateBody, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)
    ) -> Any:
        changes = {key: value for key, value in body.model_dump().items() if value is not None}
        return serialize(bank.update_task(actor, task_id, **changes))

    @app.post("/tasks/{task_id}/archive")
    def archive_task(task_id: int, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.archive_task(actor, task_id))

    @app.post("/tasks/{task_id}/complete", status_code=status.HTTP_201_CREATED)
    def complete_task(
        task_id: int, body: CompletionBody, actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)
    ) -> Any:
        return serialize(bank.complete_task(actor, task_id, notes=body.notes, photo_url=body.photo_url))

    @app.get("/completions")
    def list_completions(
        task_id: Optional[int] = None,
        account_id: Optional[int] = None,
        status_filter: Optional[CompletionStatus] = Query(None, alias="status"),
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        completions = bank.get_task_completions(actor, task_id=task_id, account_id=account_id, status=status_filter)
        return serialize(completions)

    @app.get("/completions/pending")
    def pending_approvals(actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        return serialize(bank.get_pending_approvals(actor))

    @app.post("/completions/{completion_id}/review")
    def review_completion(
        completion_id: int,
        body: ReviewBody,
        actor: Actor = Depends(get_actor),
        bank: KidLedger = Depends(get_bank),
    ) -> Any:
        return serialize(bank.review_completion(actor, completion_id, body.approve, body.reason))

    @app.post("/jobs/recurring-tasks")
    def generate_recurring(actor: Actor = Depends(get_actor), bank: KidLedger = Depends(get_bank)) -> Any:
        _require_system(actor)
        return serialize(bank.generate_recurring_completions())

    return app


__all__ = ["create_app", "get_actor", "serialize"]
