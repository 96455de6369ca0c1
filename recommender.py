"""Expense recommendation: deterministic guardrails first, model only when needed.

OK (and, under the guarded policy, WATCH) resolve locally without any
outbound call. Everything else is sent to the configured completion backend
and whatever comes back is validated field by field against the actions
allowed for the resolved status.
"""
import enum
import json
import logging
import re
import sys

from budget import ALLOWED_ACTIONS, TOLERANCES, parse_request, tolerance_from_allowed, variance_summary
from errors import ParseError, RecommendationError
from settings import SETTINGS
from strategy import resolve_strategy

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "Return JSON only. No markdown. No extra keys."

FIXED_IMPACT = {
    "OK": "No action needed; within budget guardrails. Saves review time by auto-approving.",
    "WATCH": "Flagged for review before spend crosses the allowed variance; no budget change yet.",
}
FALLBACK_IMPACT = "Automates variance review and provides consistent recommendations."
FALLBACK_ACTION = {"OK": "approve", "WATCH": "flag", "OVER": "reallocate budget"}

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class DecisionPolicy(enum.Enum):
    GUARDED = "guarded"
    APPROVE_ONLY = "approve_only"

    def is_deterministic(self, status):
        if status == "OK":
            return True
        return self is DecisionPolicy.GUARDED and status == "WATCH"


def build_prompt(expense, summary, status, strategy, headroom_candidates=None):
    actions = ", ".join(f'"{a}"' for a in ALLOWED_ACTIONS[status])
    parts = [
        "You are an AI finance assistant. Use the corporate strategy below as ground truth.\n"
        "Return JSON ONLY with EXACT keys: VarianceSummary, AITolerance, AIAction, ExpectedImpact.\n\n",
        f"AIAction must be exactly one of: {actions}.\n"
        f"AITolerance must be one of: {', '.join(TOLERANCES)}.\n\n",
        f"Expense:\n{expense.to_json()}\n\n",
        f"BudgetContext:\n{summary}\n\n",
    ]
    if headroom_candidates:
        parts.append(
            "Optional headroom candidates to support reallocation (if provided):\n"
            f"{json.dumps(headroom_candidates)}\n\n"
        )
    parts.append(f"Corporate Strategy (ground truth):\n{strategy}\n\n")
    parts.append(
        "Decision guidance:\n"
        '- If Status is WATCH: set AIAction to "flag" unless a reallocation is clearly warranted to prevent OVER.\n'
        '- If Status is OVER: choose between "cut costs", "reallocate budget", "increase budget" using the strategy.\n'
        "- Always set VarianceSummary to the BudgetContext string you were given (you may append 1 short sentence if useful).\n"
        "- ExpectedImpact: 1 short sentence (time saved, risk reduced, or performance improved).\n"
    )
    return "".join(parts)


def parse_completion(text):
    s = (text or "").strip()
    m = _FENCE.match(s)
    if m:
        s = m.group(1)
    try:
        parsed = json.loads(s)
    except ValueError as e:
        raise ParseError(f"completion is not JSON: {e}")
    if not isinstance(parsed, dict):
        raise ParseError("completion is not a JSON object")
    return parsed


def _non_blank(value):
    return isinstance(value, str) and bool(value.strip())


def normalize(parsed, status, summary, tolerance):
    out = {
        "VarianceSummary": summary,
        "AITolerance": tolerance,
        "AIAction": FALLBACK_ACTION[status],
        "ExpectedImpact": FALLBACK_IMPACT,
    }
    if not parsed:
        return out

    if _non_blank(parsed.get("VarianceSummary")):
        out["VarianceSummary"] = parsed["VarianceSummary"]
    if parsed.get("AITolerance") in TOLERANCES:
        out["AITolerance"] = parsed["AITolerance"]
    if isinstance(parsed.get("AIAction"), str) and parsed["AIAction"] in ALLOWED_ACTIONS[status]:
        out["AIAction"] = parsed["AIAction"]
    else:
        logger.warning("Discarding AIAction %r for status %s", parsed.get("AIAction"), status)
    if _non_blank(parsed.get("ExpectedImpact")):
        out["ExpectedImpact"] = parsed["ExpectedImpact"]
    return out


def with_legacy_keys(out):
    out["summary"] = out["VarianceSummary"]
    out["tolerance"] = out["AITolerance"]
    out["recommendation"] = out["AIAction"]
    return out


def default_completer(settings):
    if settings.completion_backend == "bedrock":
        from bedrock_model import invoke_bedrock
        invoke = invoke_bedrock
    else:
        from openai_model import invoke_openai
        invoke = invoke_openai

    def complete(system, user):
        return invoke([{"role": "user", "content": user}], system, settings)
    return complete


def recommend(payload, settings=None, complete=None):
    """Turn one expense payload into a recommendation dict.

    ``complete(system, user) -> str`` is only called when the policy cannot
    decide locally. Raises InvalidRequest, ConfigurationError or UpstreamError.
    """
    settings = settings or SETTINGS
    expense, context, extras = parse_request(payload)
    status = context.Status
    summary = variance_summary(context)
    tolerance = tolerance_from_allowed(context.AllowedVariancePct)
    policy = DecisionPolicy(settings.recommendation_policy)

    if policy.is_deterministic(status):
        logger.info("%s/%s: %s, tolerance=%s (rule)", expense.Division, expense.Category, status, tolerance)
        return with_legacy_keys({
            "VarianceSummary": summary,
            "AITolerance": tolerance,
            "AIAction": FALLBACK_ACTION[status],
            "ExpectedImpact": FIXED_IMPACT[status],
        })

    logger.info("%s/%s: %s, tolerance=%s (model via %s)",
                expense.Division, expense.Category, status, tolerance, settings.completion_backend)
    strategy = resolve_strategy(settings.corporate_strategy_prompt, extras["StrategyOverride"])
    prompt = build_prompt(expense, summary, status, strategy, extras["HeadroomCandidates"])
    complete = complete or default_completer(settings)
    text = complete(SYSTEM_PROMPT, prompt)

    try:
        parsed = parse_completion(text)
    except ParseError as e:
        logger.warning("Falling back to deterministic recommendation: %s", e)
        parsed = None
    return with_legacy_keys(normalize(parsed, status, summary, tolerance))


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=SETTINGS.log_level, stream=sys.stderr)
    if argv:
        with open(argv[0], encoding="utf-8") as f:
            raw = f.read()
    else:
        raw = sys.stdin.read()

    try:
        payload = json.loads(raw)
    except ValueError as e:
        print(json.dumps({"error": f"Invalid JSON payload: {e}"}))
        return 1
    try:
        result = recommend(payload)
    except RecommendationError as e:
        print(json.dumps(e.to_body()))
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
