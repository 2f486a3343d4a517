"""
Permit Ledger HTTP server.

FastAPI transport over CalculatorContract.

- Writes append to the caller's own ledger; the caller is resolved from
  X-Api-Key (or X-Account-Id when API keys are not configured).
- Reads never trust the caller: they present a permit and read on behalf of
  whoever signed it.
- Every error renders as LedgerError.as_dict() with its http_status.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, BeforeValidator, Field

from .arithmetic import U128_MAX
from .auth import ApiKeyAuth
from .config import LedgerConfig
from .contract import CalculatorContract, ContractEnv
from .errors import LEDGER_E_AUTH_REQUIRED, LEDGER_E_BAD_REQUEST, LedgerError, ledger_error
from .kvstore import open_store
from .ledger import Operation
from .metrics import instrument_fastapi, record_calculation, record_history_query
from .permits import Permit

logger = logging.getLogger("permit_ledger")


# ---------------------------
# Request/Response Models
# ---------------------------

def _u128_text(value: Any) -> str:
    """Accept a JSON integer or a decimal string; normalize to a decimal string."""
    if isinstance(value, bool):
        raise ValueError("expected an unsigned integer")
    if isinstance(value, int):
        text = str(value)
    elif isinstance(value, str) and value.isascii() and value.isdigit():
        text = str(int(value))
    else:
        raise ValueError("expected an unsigned integer or a decimal string")
    if int(text) > U128_MAX:
        raise ValueError("value out of u128 range")
    return text


U128 = Annotated[str, BeforeValidator(_u128_text)]


class CalculateRequest(BaseModel):
    """Operands as decimal strings (u128) or JSON integers."""
    left: U128
    right: Optional[U128] = None


class CalculateResponse(BaseModel):
    result: str


class CalculationHistoryQuery(BaseModel):
    page: Optional[U128] = None
    page_size: U128


class QueryWithPermit(BaseModel):
    calculation_history: CalculationHistoryQuery


class QueryRequest(BaseModel):
    permit: Dict[str, Any]
    query: QueryWithPermit


class RevokePermitRequest(BaseModel):
    permit_name: str = Field(min_length=1)


def create_app(
    contract: Optional[CalculatorContract] = None,
    config: Optional[LedgerConfig] = None,
    api_auth: Optional[ApiKeyAuth] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    from . import __version__

    config = config or LedgerConfig.from_env()
    if contract is None:
        contract = CalculatorContract(open_store(config.db_path))
    api_auth = api_auth or ApiKeyAuth.load_from_env()
    if not api_auth.enabled():
        logger.warning(
            "no API keys configured: writes and revocations trust X-Account-Id from any caller"
        )
    env = ContractEnv(contract_identity=config.contract_id, network_id=config.network_id)

    app = FastAPI(
        title="Permit Ledger",
        description="Per-account calculation ledger with permit-gated reads",
        version=__version__,
    )
    app.state.contract = contract
    app.state.env = env

    @app.exception_handler(LedgerError)
    async def _ledger_error_handler(request: Request, exc: LedgerError):
        return JSONResponse(status_code=int(exc.http_status or 400), content=exc.as_dict())

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in e.get("loc", ())) for e in exc.errors()]
        err = ledger_error(LEDGER_E_BAD_REQUEST, "Invalid request: " + ", ".join(fields), fields=fields)
        return JSONResponse(status_code=err.http_status, content=err.as_dict())

    instrument_fastapi(app)

    def _caller(x_api_key: Optional[str], x_account_id: Optional[str]) -> str:
        account, err = api_auth.resolve_identity(x_api_key, x_account_id)
        if err:
            raise ledger_error(LEDGER_E_AUTH_REQUIRED, err, http_status=401)
        return account

    @app.post("/v1/init")
    def initialize():
        contract.initialize(env)
        return {"contract_identity": env.contract_identity, "network_id": env.network_id}

    @app.post("/v1/calculate/{operation}", response_model=CalculateResponse)
    def calculate(
        operation: str,
        body: CalculateRequest,
        x_api_key: Optional[str] = Header(default=None),
        x_account_id: Optional[str] = Header(default=None),
    ):
        sender = _caller(x_api_key, x_account_id)
        op = Operation.parse(operation)
        try:
            right = None if body.right is None else int(body.right)
            result = contract.execute(env, sender, op, int(body.left), right)
        except LedgerError as e:
            record_calculation(op.value, e.code)
            raise
        record_calculation(op.value, "ok")
        return CalculateResponse(result=str(result))

    @app.post("/v1/query/with_permit")
    def query_with_permit(body: QueryRequest):
        q = body.query.calculation_history
        try:
            permit = Permit.from_dict(body.permit)
            page = None if q.page is None else int(q.page)
            calcs, total = contract.query_with_permit(env, permit, page, int(q.page_size))
        except LedgerError as e:
            record_history_query(e.kind or e.code)
            raise
        record_history_query("ok")
        return {
            "calculation_history": {
                "calcs": [c.to_dict() for c in calcs],
                "total": str(total),
            }
        }

    @app.post("/v1/permits/revoke")
    def revoke_permit(
        body: RevokePermitRequest,
        x_api_key: Optional[str] = Header(default=None),
        x_account_id: Optional[str] = Header(default=None),
    ):
        sender = _caller(x_api_key, x_account_id)
        contract.revoke_permit(env, sender, body.permit_name)
        return {"revoked": body.permit_name}

    @app.get("/v1/health")
    def health_check():
        return {
            "status": "healthy",
            "contract_identity": env.contract_identity,
            "network_id": env.network_id,
            "initialized": contract.is_initialized(),
        }

    return app
