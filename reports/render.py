from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List

from jinja2 import Environment, FileSystemLoader, select_autoescape

from reports.metrics import MoneyTotal, NewCollective, ReportResult
from store import models


def _get_template_env() -> Environment:
    """Create Jinja2 environment with templates directory."""
    templates_dir = Path(__file__).parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def format_amount(amount: int, currency: str, negate: bool = False) -> str:
    """
    Format a minor-unit amount as "<major> <CURRENCY>".

    Trailing zeros are dropped: 5000 -> "50 USD", 12345 -> "123.45 USD".
    """
    value = Decimal(-amount if negate else amount) / 100
    if value == 0:
        return f"0 {currency}"
    text = format(value.normalize(), "f")
    return f"{text} {currency}"


def format_collective(collective: NewCollective) -> str:
    if collective.is_open_source:
        label = "open source"
    else:
        label = ",".join(collective.tags or [])
    return f"{collective.slug} ({label})"


def _bullets(items: List[str]) -> str:
    return "\n    * " + "\n    * ".join(items).strip()


def display_totals(totals: Iterable[str]) -> str:
    items = list(totals)
    return f" totaling:{_bullets(items)}" if items else ""


def display_collectives(collectives: Iterable[str]) -> str:
    items = list(collectives)
    return f":{_bullets(items)}" if items else ""


def _format_totals(totals: List[MoneyTotal], negate: bool = False) -> List[str]:
    return [format_amount(t.amount, t.currency, negate=negate) for t in totals]


def _prepare_context(result: ReportResult) -> Dict[str, Any]:
    """
    Prepare template context from collected metrics.

    Expense sums are displayed negated (``-SUM / 100``).
    """
    expenses = [
        {
            "label": status.lower(),
            "count": result.expenses[status].count,
            "totals": _format_totals(result.expenses[status].totals, negate=True),
        }
        for status in models.EXPENSE_STATUSES
    ]

    return {
        "donation_count": result.donation_count,
        "donation_totals": _format_totals(result.donation_totals),
        "stripe_received_count": result.stripe_received_count,
        "expenses": expenses,
        "active_collective_count": result.active_collective_count,
        "new_collectives": [format_collective(c) for c in result.new_collectives],

        # Helper functions
        "display_totals": display_totals,
        "display_collectives": display_collectives,
    }


def render_report(result: ReportResult) -> str:
    """
    Render the weekly Slack summary.

    Failure modes:
        - Raises jinja2.TemplateError if template is malformed
        - Raises if templates/weekly_report.txt.j2 is missing
    """
    env = _get_template_env()
    template = env.get_template("weekly_report.txt.j2")
    return template.render(**_prepare_context(result))
