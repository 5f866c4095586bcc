from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from calculator import calculation_types
from database import SessionLocal
from errors import CalculationError
from mailer import Mailer
from models import Category, Transaction, TransactionType, User
from periods import Period, parse_instant, resolve_period
from scheduler import SchedulerManager
from schemas import (
    CalculatorRunIn,
    CategoryIn,
    CategoryUpdateIn,
    ForgotPasswordIn,
    LoginIn,
    RegisterIn,
    ResetPasswordIn,
    TransactionIn,
    TransactionUpdateIn,
)
from security import build_reset_rate_limiter, create_session_token, read_session_token
from services import (
    AuthService,
    CalculatorService,
    CategoryService,
    EmailAlreadyRegistered,
    InvalidCredentials,
    InvalidResetToken,
    ReportService,
    TransactionFilters,
    TransactionService,
    saved_calculation_to_dict,
)

FORGOT_PASSWORD_MESSAGE = "If the email exists, we will send a link to reset the password."

app = FastAPI(title="Finance Tracker")
app.state.reset_rate_limiter = build_reset_rate_limiter()
app.state.mailer = Mailer()

bearer_scheme = HTTPBearer(auto_error=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager(app.state.reset_rate_limiter)


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    data = read_session_token(credentials.credentials)
    if not data:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    user = db.get(User, int(data["sub"]))
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return user


def auth_service(request: Request, db: Session) -> AuthService:
    return AuthService(
        db,
        rate_limiter=request.app.state.reset_rate_limiter,
        mailer=request.app.state.mailer,
    )


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def period_from_query(start: Optional[str], end: Optional[str]) -> Period:
    try:
        return resolve_period(start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def user_to_dict(user: User) -> dict[str, Any]:
    return {"id": user.id, "name": user.name, "email": user.email}


def session_payload(user: User) -> dict[str, Any]:
    return {
        "token": create_session_token(user.id, user.email, user.name),
        "user": user_to_dict(user),
    }


def category_to_dict(category: Category) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "kind": category.kind.value,
        "priority": category.priority.value,
        "monthly_budget_cents": category.monthly_budget_cents,
    }


def transaction_to_dict(txn: Transaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "type": txn.type.value,
        "amount_cents": txn.amount_cents,
        "date": txn.date.replace(tzinfo=timezone.utc).isoformat(),
        "category_id": txn.category_id,
        "category": category_to_dict(txn.category) if txn.category else None,
        "description": txn.description,
        "method": txn.method.value,
        "tag": txn.tag,
    }


@app.get("/")
def root():
    return {"name": "finance-tracker", "status": "ok"}


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterIn, request: Request, db: Session = Depends(get_db)):
    try:
        user = auth_service(request, db).register(payload)
    except EmailAlreadyRegistered as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return session_payload(user)


@app.post("/api/auth/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    try:
        user = auth_service(request, db).authenticate(payload)
    except InvalidCredentials as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return session_payload(user)


@app.post("/api/auth/logout")
def logout():
    # Tokens are stateless; the client drops its copy.
    return {"ok": True}


@app.get("/api/auth/me")
def me(user: User = Depends(current_user)):
    return {"user": user_to_dict(user)}


@app.post("/api/auth/forgot-password")
def forgot_password(
    payload: ForgotPasswordIn, request: Request, db: Session = Depends(get_db)
):
    auth_service(request, db).request_password_reset(payload.email, client_ip(request))
    return {"ok": True, "message": FORGOT_PASSWORD_MESSAGE}


@app.post("/api/auth/reset-password")
def reset_password(
    payload: ResetPasswordIn, request: Request, db: Session = Depends(get_db)
):
    try:
        auth_service(request, db).reset_password(payload.token, payload.password)
    except InvalidResetToken as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True}


@app.get("/api/categories")
def list_categories(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    categories = CategoryService(db, user.id).list_all()
    return {"items": [category_to_dict(c) for c in categories]}


@app.post("/api/categories", status_code=201)
def create_category(
    payload: CategoryIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user.id).create(payload)
    return {"item": category_to_dict(category)}


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user.id).update(category_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"item": category_to_dict(category)}


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user.id).delete(category_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True}


@app.get("/api/transactions")
def list_transactions(
    start: Optional[str] = Query(default=None, alias="from"),
    end: Optional[str] = Query(default=None, alias="to"),
    type_param: Optional[str] = Query(default=None, alias="type"),
    category_id: Optional[int] = None,
    q: Optional[str] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    txn_type = None
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError:
            txn_type = None
    try:
        filters = TransactionFilters(
            start=parse_instant(start) if start else None,
            end=parse_instant(end) if end else None,
            type=txn_type,
            category_id=category_id,
            query=q,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    items = TransactionService(db, user.id).list(filters)
    return {"items": [transaction_to_dict(t) for t in items]}


@app.post("/api/transactions", status_code=201)
def create_transaction(
    payload: TransactionIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"item": transaction_to_dict(txn)}


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = TransactionService(db, user.id)
    try:
        service.get(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        txn = service.update(transaction_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"item": transaction_to_dict(txn)}


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user.id).delete(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True}


@app.get("/api/reports/summary")
def report_summary(
    start: Optional[str] = Query(default=None, alias="from"),
    end: Optional[str] = Query(default=None, alias="to"),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    period = period_from_query(start, end)
    reference = period.end if end else datetime.now(timezone.utc)
    return ReportService(db, user.id).summary(period, reference)


@app.get("/api/reports/export.csv")
def export_report(
    start: Optional[str] = Query(default=None, alias="from"),
    end: Optional[str] = Query(default=None, alias="to"),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    period = period_from_query(start, end)
    csv_text = ReportService(db, user.id).export_csv(period)
    filename = f"transactions_{period.start.date()}_{period.end.date()}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/calculator/types")
def list_calculation_types(user: User = Depends(current_user)):
    return {"items": calculation_types()}


@app.post("/api/calculator/run")
def run_calculation(payload: CalculatorRunIn, user: User = Depends(current_user)):
    try:
        result = CalculatorService.run(payload.type, payload.params)
    except CalculationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return result.to_dict()


@app.post("/api/calculator/run-and-save")
def run_and_save_calculation(
    payload: CalculatorRunIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        return CalculatorService(db, user.id).run_and_save(payload)
    except CalculationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.get("/api/calculator/saved")
def list_saved_calculations(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    items = CalculatorService(db, user.id).list_saved()
    return {"items": [saved_calculation_to_dict(i) for i in items]}


@app.delete("/api/calculator/saved/{calculation_id}")
def delete_saved_calculation(
    calculation_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        CalculatorService(db, user.id).delete_saved(calculation_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True}
