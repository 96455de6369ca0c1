"""Expense and budget-context parsing for the recommendation handler.

Payloads come from a spreadsheet lookup relayed through Zapier, so every
number may arrive as text ("15,000", "$180000", "5%") or not at all. Numbers
are coerced leniently; anything unusable becomes None and prints as "n/a".
"""
import json
import math
from dataclasses import dataclass, asdict

from errors import InvalidRequest

STATUSES = ("OK", "WATCH", "OVER")

ALLOWED_ACTIONS = {
    "OK": ("approve",),
    "WATCH": ("flag", "reallocate budget"),
    "OVER": ("cut costs", "reallocate budget", "increase budget"),
}
TOLERANCES = ("strict", "moderate", "loose")


def to_number(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            n = float(value)
        except OverflowError:
            return None
        return n if math.isfinite(n) else None
    if not isinstance(value, str):
        return None

    s = value.strip().replace(",", "")
    if s[:1] in ("$", "€", "£"):
        s = s[1:]
    divisor = 1
    if s.endswith("%"):
        s, divisor = s[:-1].strip(), 100
    if not s:
        return None
    try:
        n = float(s) / divisor
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def fmt_number(n):
    if n is None:
        return "n/a"
    if float(n).is_integer():
        return str(int(n))
    return repr(n)


def _text(value):
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class ExpenseInput:
    Division: str
    Category: str
    VendorSource: str
    Amount: float | None
    Notes: str

    def to_json(self) -> str:
        out = asdict(self)
        if self.Amount is not None and self.Amount.is_integer():
            out["Amount"] = int(self.Amount)
        return json.dumps(out)


@dataclass(frozen=True)
class BudgetContext:
    BudgetAmount: float | None
    ActualToDate: float | None
    VarianceAmount: float | None
    VariancePct: float | None
    AllowedVariancePct: float | None
    Status: str
    Headroom: float | None


def resolve_status(status, variance_pct, allowed_pct) -> str:
    s = _text(status).upper()
    if s in STATUSES:
        return s
    if variance_pct is None or allowed_pct is None:
        return "WATCH"
    if variance_pct > allowed_pct:
        return "OVER"
    if variance_pct > 0:
        return "WATCH"
    return "OK"


def tolerance_from_allowed(allowed) -> str:
    if allowed is None:
        return "moderate"
    if allowed <= 0.05:
        return "strict"
    if allowed <= 0.10:
        return "moderate"
    return "loose"


def variance_summary(context: BudgetContext) -> str:
    return " | ".join([
        f"Budget: {fmt_number(context.BudgetAmount)}",
        f"ActualToDate: {fmt_number(context.ActualToDate)}",
        f"VarianceAmount: {fmt_number(context.VarianceAmount)}",
        f"VariancePct: {fmt_number(context.VariancePct)}",
        f"Allowed: {fmt_number(context.AllowedVariancePct)}",
        f"Status: {context.Status or 'n/a'}",
        f"Headroom: {fmt_number(context.Headroom)}",
    ])


def parse_headroom_candidates(value):
    if value is None or value == "" or value == [] or value == {}:
        return None
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def parse_request(payload):
    """Split a flat payload into (ExpenseInput, BudgetContext, extras).

    Raises InvalidRequest when Division, Category or Amount is missing. A
    non-numeric Amount is kept as None instead of rejecting the request.
    """
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object")

    division = _text(payload.get("Division"))
    category = _text(payload.get("Category"))
    amount = payload.get("Amount")
    if not division or not category or amount is None or _text(amount) == "":
        raise InvalidRequest("Missing required fields: Division, Category, Amount")

    expense = ExpenseInput(
        Division=division,
        Category=category,
        VendorSource=_text(payload.get("VendorSource")),
        Amount=to_number(amount),
        Notes=_text(payload.get("Notes")),
    )

    variance_pct = to_number(payload.get("VariancePct"))
    allowed_pct = to_number(payload.get("AllowedVariancePct"))
    context = BudgetContext(
        BudgetAmount=to_number(payload.get("BudgetAmount")),
        ActualToDate=to_number(payload.get("ActualToDate")),
        VarianceAmount=to_number(payload.get("VarianceAmount")),
        VariancePct=variance_pct,
        AllowedVariancePct=allowed_pct,
        Status=resolve_status(payload.get("Status"), variance_pct, allowed_pct),
        Headroom=to_number(payload.get("Headroom")),
    )

    extras = {
        "HeadroomCandidates": parse_headroom_candidates(payload.get("HeadroomCandidates")),
        "StrategyOverride": _text(payload.get("StrategyOverride")) or None,
    }
    return expense, context, extras
