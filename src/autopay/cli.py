"""
Autopay CLI: run and inspect the auto-pay agent.

Commands:
    autopay status       Show agent address, rules and advisory mode
    autopay check        Evaluate the spending policy for an amount
    autopay invoice      Issue a premium-play invoice for an address
    autopay authorize    Sign a transfer authorization through the policy
    autopay serve        Run the HTTP service

Key material is only read from the environment (AGENT_PRIVATE_KEY).
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid

import click

from .agent import AutoPayAgent
from .config import AgentConfig
from .errors import AutopayError, ConfigurationError
from .invoices import Invoice, InvoiceLedger


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _configure_logging(verbose: bool) -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )


def _load_config() -> AgentConfig:
    try:
        return AgentConfig.from_env()
    except ConfigurationError as e:
        click.echo(f"❌ Configuration error: {e}", err=True)
        sys.exit(1)


def _load_agent(config: AgentConfig) -> AutoPayAgent:
    try:
        return AutoPayAgent.from_config(config)
    except AutopayError as e:
        click.echo(f"❌ Failed to start agent: {e}", err=True)
        sys.exit(1)


# ── CLI ───────────────────────────────────────────────────────────

@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging")
def main(verbose: bool):
    """Autopay: gasless payment authorization agent."""
    _configure_logging(verbose)


@main.command()
def status():
    """Show the agent's address, rules and advisory mode."""
    agent = _load_agent(_load_config())
    click.echo(json.dumps(agent.get_status(), indent=2))


@main.command()
@click.argument("amount", type=str)
def check(amount: str):
    """Evaluate the deterministic policy for AMOUNT (display units)."""
    agent = _load_agent(_load_config())
    try:
        decision = agent.can_pay(amount)
    except ArithmeticError:
        click.echo(f"❌ Invalid amount: {amount}", err=True)
        sys.exit(1)

    if decision.allowed:
        click.echo(f"✅ Allowed: {amount}")
    else:
        click.echo(f"❌ Denied: {decision.reason}")
        sys.exit(1)


@main.command()
@click.argument("address")
def invoice(address: str):
    """Issue a premium-play invoice for ADDRESS."""
    config = _load_config()
    ledger = InvoiceLedger(config.invoice, config.token)
    click.echo(json.dumps(ledger.create_invoice(address).to_dict(), indent=2))


@main.command()
@click.option("--to", "to", required=True, help="Recipient address")
@click.option("--amount", type=int, required=True, help="Amount in base units (6 decimals)")
@click.option("--description", default="Manual authorization", help="Human-readable description")
def authorize(to: str, amount: int, description: str):
    """Run the payment flow for an ad hoc invoice and print the signature."""
    config = _load_config()
    agent = _load_agent(config)
    now_ms = int(time.time() * 1000)
    adhoc = Invoice(
        id=str(uuid.uuid4()),
        address=agent.address.lower(),
        amount=str(amount),
        currency=config.invoice.currency,
        network=config.invoice.network,
        description=description,
        pay_to=to,
        timestamp=now_ms,
        expires_at=now_ms + config.invoice.expiry_seconds * 1000,
    )
    result = agent.process_payment(adhoc)
    click.echo(json.dumps(result.to_dict(), indent=2))
    if not result.success:
        sys.exit(1)


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=5001, show_default=True)
@click.option("--no-poll", is_flag=True, default=False, help="Disable background balance polling")
def serve(host: str, port: int, no_poll: bool):
    """Run the HTTP service."""
    import uvicorn

    from .server import create_app

    config = _load_config()
    agent = _load_agent(config)
    try:
        agent.initialize()
    except AutopayError as e:
        click.echo(f"❌ Failed to initialize agent: {e}", err=True)
        sys.exit(1)

    app = create_app(agent, InvoiceLedger(config.invoice, config.token), run_poller=not no_poll)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
