"""
FastAPI REST API Module

HTTP surface for the ATM: account opening, login, balance enquiry,
deposits, withdrawals, mini-statements, history export, PIN change,
cheque deposits and the interest calculator. Runs on port 8090 by default.
"""

from contextlib import asynccontextmanager
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from .config import get_config
from .errors import AtmError, ErrorKind, LedgerResult
from .logging_config import setup_logging
from .service import AtmService
from .settlement import SettlementTask


# Pydantic models for API requests
class CreateAccountRequest(BaseModel):
    username: str
    pin: Union[int, str]
    initial_balance: Optional[int] = Field(None, ge=0, description="Defaults to the configured opening balance")


class LoginRequest(BaseModel):
    pin: Union[int, str]


class AmountRequest(BaseModel):
    amount: Union[int, str] = Field(..., description="Whole rupee amount")


class ChequeRequest(AmountRequest):
    delay_seconds: Optional[float] = Field(None, ge=0, description="Overrides the clearing delay")


class ChangePinRequest(BaseModel):
    current_pin: Union[int, str]
    new_pin: Union[int, str]


STATUS_BY_KIND = {
    ErrorKind.INVALID_AMOUNT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INSUFFICIENT_FUNDS: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ACCOUNT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ACCOUNT_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_403_FORBIDDEN,
}


def _ledger_response(result: LedgerResult) -> dict:
    if not result.ok:
        raise HTTPException(
            status_code=STATUS_BY_KIND[result.kind],
            detail={"error": result.kind.value, "message": result.message, "balance": result.balance},
        )
    return {
        "balance": result.balance,
        "entry": result.entry.text,
        "message": result.entry.description,
    }


def _cheque_response(task: SettlementTask) -> dict:
    outcome = task.outcome
    return {
        "task_id": task.id,
        "username": task.account_id,
        "amount": task.amount,
        "state": task.state.value,
        "credited": outcome.credited if outcome else False,
        "balance": outcome.balance if outcome else None,
    }


def create_app(service: Optional[AtmService] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Abort unfinished cheques and close the store on shutdown"""
        yield
        if app.state.service is not None:
            app.state.service.shutdown()

    app = FastAPI(
        title="ATM Ledger API",
        description="Single-account ledgers with deferred cheque settlement",
        version="1.0.0",
        docs_url="/docs",
        lifespan=lifespan
    )
    app.state.service = service

    def get_service() -> AtmService:
        if app.state.service is None:
            app.state.service = AtmService()
        return app.state.service

    @app.exception_handler(AtmError)
    async def atm_error_handler(request: Request, exc: AtmError):
        return JSONResponse(
            status_code=STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST),
            content={"detail": {"error": exc.kind.value, "message": exc.message}},
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    @app.post("/accounts", status_code=status.HTTP_201_CREATED)
    def create_account(request: CreateAccountRequest, svc: AtmService = Depends(get_service)):
        ledger = svc.open_account(request.username, request.pin, request.initial_balance)
        return {
            "username": ledger.account_id,
            "balance": ledger.balance,
            "message": f"Account created successfully for {ledger.account_id}",
        }

    @app.post("/accounts/{username}/login")
    def login(username: str, request: LoginRequest, svc: AtmService = Depends(get_service)):
        ledger = svc.login(username, request.pin)
        return {"username": ledger.account_id, "message": "Login successful"}

    @app.get("/accounts/{username}/balance")
    def get_balance(username: str, svc: AtmService = Depends(get_service)):
        enquiry = svc.check_balance(username)
        return {
            "username": enquiry.username,
            "balance": enquiry.balance,
            "alert": enquiry.alert,
            "message": enquiry.message,
        }

    @app.post("/accounts/{username}/deposit")
    def deposit(username: str, request: AmountRequest, svc: AtmService = Depends(get_service)):
        return _ledger_response(svc.deposit(username, request.amount))

    @app.post("/accounts/{username}/withdraw")
    def withdraw(username: str, request: AmountRequest, svc: AtmService = Depends(get_service)):
        return _ledger_response(svc.withdraw(username, request.amount))

    @app.get("/accounts/{username}/statement")
    def get_statement(username: str, limit: Optional[int] = None, svc: AtmService = Depends(get_service)):
        if limit is not None and limit < 0:
            raise HTTPException(status_code=400, detail="limit must not be negative")
        entries = svc.mini_statement(username, limit)
        return {
            "username": username,
            "entries": [entry.to_dict() for entry in entries],
            "lines": [entry.text for entry in entries],
        }

    @app.post("/accounts/{username}/export")
    def export(username: str, svc: AtmService = Depends(get_service)):
        try:
            path = svc.export_history(username)
        except OSError as e:
            raise HTTPException(status_code=500, detail=f"Error exporting file: {e}")
        return {"path": str(path), "message": f"Exported to {path.name}"}

    @app.put("/accounts/{username}/pin")
    def change_pin(username: str, request: ChangePinRequest, svc: AtmService = Depends(get_service)):
        record = svc.change_pin(username, request.current_pin, request.new_pin)
        return {
            "message": "PIN updated.",
            "persistence": record.outcome.value if record else None,
        }

    @app.post("/accounts/{username}/cheques", status_code=status.HTTP_202_ACCEPTED)
    def deposit_cheque(username: str, request: ChequeRequest, svc: AtmService = Depends(get_service)):
        task = svc.deposit_cheque(username, request.amount, request.delay_seconds)
        response = _cheque_response(task)
        response["message"] = "Cheque received. Processing (this runs in background)..."
        return response

    @app.get("/cheques/{task_id}")
    def get_cheque(task_id: str, svc: AtmService = Depends(get_service)):
        task = svc.get_cheque(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Cheque not found")
        return _cheque_response(task)

    @app.delete("/cheques/{task_id}")
    def cancel_cheque(task_id: str, svc: AtmService = Depends(get_service)):
        try:
            cancelled = svc.cancel_cheque(task_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Cheque not found")
        response = _cheque_response(svc.get_cheque(task_id))
        response["cancelled"] = cancelled
        return response

    @app.get("/accounts/{username}/interest")
    def interest(username: str, years: str, svc: AtmService = Depends(get_service)):
        quote = svc.interest(username, years)
        response = quote.to_dict()
        response["message"] = quote.render()
        return response

    @app.get("/accounts/{username}/notifications")
    def notifications(username: str, svc: AtmService = Depends(get_service)):
        events = svc.notifications(username)
        return {"notifications": [event.to_dict() for event in events]}

    return app


app = create_app()


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, "atm", config.log_format)
    uvicorn.run(
        "atm_ledger.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level="info"
    )
