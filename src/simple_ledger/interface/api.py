from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from simple_ledger.application.dashboard import FinanceDashboard
from simple_ledger.application.table import TransactionTable
from simple_ledger.domain.errors import LedgerValidationError, NotAuthenticatedError, validation_message
from simple_ledger.domain.models import ALL, SortDirection, SortField, TransactionType
from simple_ledger.domain.schemas import (
    AccountInput,
    AuthResult,
    BulkDeleteRequest,
    PasswordResetRequest,
    RemoteConfigRequest,
    SignInRequest,
    SignUpRequest,
    SortState,
    Transaction,
    TransactionDraft,
    TransactionFilters,
    TransactionPatch,
    UsernameUpdate,
)
from simple_ledger.interface.cli import build_dashboard


def _txn(txn: Transaction) -> dict[str, Any]:
    return txn.model_dump(mode="json", by_alias=True, exclude_none=True)


def _auth_payload(result: AuthResult) -> dict[str, Any]:
    return result.model_dump(mode="json", by_alias=True)


def create_app(dashboard: FinanceDashboard) -> FastAPI:
    app = FastAPI(title="Simple Ledger API")
    session = dashboard.session

    @app.exception_handler(NotAuthenticatedError)
    async def _unauthenticated(request: Request, exc: NotAuthenticatedError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": str(exc)})

    @app.exception_handler(LedgerValidationError)
    async def _invalid(request: Request, exc: LedgerValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    def current_user_id() -> str:
        return session.require_user_id()

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    # ---- auth ----
    @app.post("/auth/sign-in")
    def sign_in(body: SignInRequest) -> JSONResponse:
        result = session.sign_in(body.identifier, body.password)
        return JSONResponse(status_code=200 if result.ok else 401, content=_auth_payload(result))

    @app.post("/auth/sign-up")
    def sign_up(body: SignUpRequest) -> JSONResponse:
        result = session.sign_up(body.username, body.password, body.email, confirm_password=body.confirm_password)
        return JSONResponse(status_code=201 if result.ok else 400, content=_auth_payload(result))

    @app.post("/auth/sign-out")
    def sign_out() -> dict[str, bool]:
        session.sign_out()
        return {"ok": True}

    @app.get("/auth/me")
    def me(user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        user = session.current_user()
        return user.model_dump(mode="json", by_alias=True, exclude_none=True) if user else {}

    @app.put("/auth/username")
    def update_username(body: UsernameUpdate, user_id: str = Depends(current_user_id)) -> JSONResponse:
        result = session.update_username(body.username)
        return JSONResponse(status_code=200 if result.ok else 400, content=_auth_payload(result))

    @app.post("/auth/reset-password")
    def reset_password(body: PasswordResetRequest) -> JSONResponse:
        result = session.reset_password(body.email)
        return JSONResponse(status_code=200 if result.ok else 400, content=_auth_payload(result))

    @app.post("/auth/remote-config")
    def configure_remote(body: RemoteConfigRequest) -> JSONResponse:
        ok = session.configure_remote(body.url, body.anon_key)
        return JSONResponse(status_code=200 if ok else 400, content={"ok": ok, "remote_configured": session.remote_configured})

    @app.delete("/auth/remote-config")
    def clear_remote() -> dict[str, bool]:
        session.clear_remote_config()
        return {"ok": True, "remote_configured": session.remote_configured}

    # ---- transactions ----
    @app.get("/transactions")
    def list_transactions(
        search: str = "",
        category: str = ALL,
        txn_type: str = Query(ALL, alias="type"),
        account: str = ALL,
        status: str = ALL,
        sort: SortField = SortField.DATE,
        direction: SortDirection = SortDirection.DESC,
        user_id: str = Depends(current_user_id),
    ) -> dict[str, Any]:
        try:
            filters = TransactionFilters(search=search, category=category, type=txn_type, account=account, status=status)
        except ValidationError as exc:
            raise LedgerValidationError(validation_message(exc)) from exc
        table = TransactionTable(filters=filters, sort=SortState(field=sort, direction=direction))
        transactions = dashboard.transactions()
        rows = table.rows(transactions)
        return {
            "transactions": [_txn(t) for t in rows],
            "count": len(rows),
            "totals": asdict(table.totals(transactions)),
        }

    @app.post("/transactions", status_code=201)
    def create_transaction(body: TransactionDraft, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        return _txn(dashboard.add_transaction(body))

    @app.get("/transactions/recent")
    def recent_transactions(limit: int = 5, user_id: str = Depends(current_user_id)) -> list[dict[str, Any]]:
        return [_txn(t) for t in dashboard.recent(limit)]

    @app.get("/transactions/export")
    def export_transactions(user_id: str = Depends(current_user_id)) -> Response:
        filename, body = dashboard.export_transactions()
        return Response(
            content=body,
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/transactions/bulk-delete")
    def bulk_delete(body: BulkDeleteRequest, user_id: str = Depends(current_user_id)) -> dict[str, int]:
        return {"deleted": dashboard.delete_transactions(body.ids)}

    @app.patch("/transactions/{transaction_id}")
    def update_transaction(
        transaction_id: str, body: TransactionPatch, user_id: str = Depends(current_user_id)
    ) -> dict[str, Any]:
        updated = dashboard.update_transaction(transaction_id, body)
        if updated is None:
            raise HTTPException(status_code=404, detail="Transaction not found")
        return _txn(updated)

    @app.delete("/transactions/{transaction_id}")
    def delete_transaction(transaction_id: str, user_id: str = Depends(current_user_id)) -> dict[str, bool]:
        return {"deleted": dashboard.delete_transaction(transaction_id)}

    # ---- derived views ----
    @app.get("/summary")
    def summary(user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        return asdict(dashboard.summary())

    @app.get("/breakdown")
    def breakdown(
        txn_type: TransactionType = Query(TransactionType.EXPENSE, alias="type"),
        user_id: str = Depends(current_user_id),
    ) -> list[dict[str, Any]]:
        slices = dashboard.expense_breakdown() if txn_type == TransactionType.EXPENSE else dashboard.income_breakdown()
        return [asdict(s) for s in slices]

    @app.get("/history")
    def history(months: int | None = None, user_id: str = Depends(current_user_id)) -> list[dict[str, Any]]:
        return [asdict(m) for m in dashboard.history(months)]

    # ---- accounts ----
    @app.get("/accounts")
    def list_accounts(user_id: str = Depends(current_user_id)) -> list[dict[str, Any]]:
        return [
            {**a.to_storage(), "typeLabel": a.type_label, "isCard": a.is_card}
            for a in dashboard.list_accounts()
        ]

    @app.post("/accounts", status_code=201)
    def create_account(body: AccountInput, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        return dashboard.add_account(body).to_storage()

    @app.put("/accounts/{account_id}")
    def replace_account(account_id: str, body: AccountInput, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        account = dashboard.update_account(account_id, body)
        if account is None:
            raise HTTPException(status_code=404, detail="Account not found")
        return account.to_storage()

    @app.delete("/accounts/{account_id}")
    def delete_account(account_id: str, user_id: str = Depends(current_user_id)) -> dict[str, bool]:
        return {"deleted": dashboard.delete_account(account_id)}

    return app


app = create_app(build_dashboard())
