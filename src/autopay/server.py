"""
HTTP surface for the agent and the pay-for-access flow.

Services are constructed by the caller and attached to ``app.state``; the
app holds no module-level state.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .agent import AutoPayAgent
from .errors import InvoiceNotFoundError
from .invoices import InvoiceLedger

logger = logging.getLogger(__name__)


class InvoiceRequest(BaseModel):
    address: str


class VerifyRequest(BaseModel):
    address: str
    payment: Optional[str] = None
    invoice_id: Optional[str] = None


class AgentPayRequest(BaseModel):
    invoice_id: str


def get_agent(request: Request) -> AutoPayAgent:
    return request.app.state.agent


def get_invoices(request: Request) -> InvoiceLedger:
    return request.app.state.invoices


def create_app(
    agent: AutoPayAgent,
    invoices: InvoiceLedger,
    run_poller: bool = True,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_poller:
            agent.start()
        try:
            yield
        finally:
            agent.close()

    app = FastAPI(title="Autopay Agent", version="0.1.0", lifespan=lifespan)
    app.state.agent = agent
    app.state.invoices = invoices

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/payment/invoice")
    def request_invoice(body: InvoiceRequest, ledger: InvoiceLedger = Depends(get_invoices)):
        return ledger.create_invoice(body.address).to_dict()

    @app.get("/api/payment/requirements")
    def payment_requirements(ledger: InvoiceLedger = Depends(get_invoices)):
        return ledger.payment_requirements()

    @app.post("/api/payment/verify")
    def verify_payment(
        body: VerifyRequest,
        x_payment: Optional[str] = Header(default=None),
        ledger: InvoiceLedger = Depends(get_invoices),
    ):
        token = body.payment or x_payment
        paid = ledger.verify_payment(body.address, token, invoice_id=body.invoice_id)
        return {"paid": paid}

    @app.get("/api/payment/history/{address}")
    def payment_history(address: str, ledger: InvoiceLedger = Depends(get_invoices)):
        return {"payments": [r.to_dict() for r in ledger.get_payment_history(address)]}

    @app.get("/api/play")
    def play(
        address: str = Query(...),
        x_payment: Optional[str] = Header(default=None),
        ledger: InvoiceLedger = Depends(get_invoices),
    ):
        if ledger.verify_payment(address, x_payment):
            return {"allowed": True, "isPremium": True}
        invoice = ledger.create_invoice(address)
        return JSONResponse(
            status_code=402,
            content={"allowed": False, "requiresPayment": True, "invoice": invoice.to_dict()},
        )

    @app.post("/api/agent/pay")
    def agent_pay(
        body: AgentPayRequest,
        agent: AutoPayAgent = Depends(get_agent),
        ledger: InvoiceLedger = Depends(get_invoices),
    ):
        try:
            invoice = ledger.get_invoice(body.invoice_id)
        except InvoiceNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return agent.process_payment(invoice).to_dict()

    @app.get("/api/agent/status")
    def agent_status(agent: AutoPayAgent = Depends(get_agent)):
        return agent.get_status()

    return app
