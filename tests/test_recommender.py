import json

import pytest

from errors import ConfigurationError, ParseError, UpstreamError
from recommender import (
    FALLBACK_IMPACT,
    SYSTEM_PROMPT,
    DecisionPolicy,
    main,
    parse_completion,
    recommend,
)
from settings import Settings
from strategy import DEFAULT_CORPORATE_STRATEGY, resolve_strategy

OVER_ACTIONS = {"cut costs", "reallocate budget", "increase budget"}


def test_watch_flags_without_model_call(payload, settings, fake_completer):
    complete = fake_completer()
    out = recommend(payload, settings, complete)
    assert out["AIAction"] == "flag"
    assert out["AITolerance"] == "strict"
    assert out["recommendation"] == "flag"
    assert out["tolerance"] == "strict"
    assert out["summary"] == out["VarianceSummary"]
    assert complete.calls == []


def test_ok_approves_without_model_call(payload, settings, fake_completer):
    payload["Status"] = "OK"
    complete = fake_completer()
    out = recommend(payload, settings, complete)
    assert out["AIAction"] == "approve"
    assert out["ExpectedImpact"].startswith("No action needed")
    assert complete.calls == []


def test_derived_ok_approves(payload, settings, fake_completer):
    del payload["Status"]
    payload["VariancePct"] = -0.01
    complete = fake_completer()
    assert recommend(payload, settings, complete)["AIAction"] == "approve"
    assert complete.calls == []


def test_derived_watch_flags_without_model_call(payload, settings, fake_completer):
    del payload["Status"]
    payload["VariancePct"] = 0.02
    payload["AllowedVariancePct"] = 0.05
    complete = fake_completer()
    out = recommend(payload, settings, complete)
    assert out["AIAction"] == "flag"
    assert "Status: WATCH" in out["VarianceSummary"]
    assert complete.calls == []


def test_deterministic_branch_needs_no_api_key(payload, fake_completer):
    out = recommend(payload, Settings(openai_api_key=None))
    assert out["AIAction"] == "flag"


def test_over_uses_model_answer(payload, settings, fake_completer):
    payload["Status"] = "OVER"
    complete = fake_completer(json.dumps({
        "VarianceSummary": "Over by 4750.",
        "AITolerance": "strict",
        "AIAction": "cut costs",
        "ExpectedImpact": "Rightsizing saves 10% next month.",
    }))
    out = recommend(payload, settings, complete)
    assert out == {
        "VarianceSummary": "Over by 4750.",
        "AITolerance": "strict",
        "AIAction": "cut costs",
        "ExpectedImpact": "Rightsizing saves 10% next month.",
        "summary": "Over by 4750.",
        "tolerance": "strict",
        "recommendation": "cut costs",
    }
    system, user = complete.calls[0]
    assert system == SYSTEM_PROMPT
    assert "Cloud Compute & Storage" in user
    assert "Status: OVER" in user
    assert '"cut costs", "reallocate budget", "increase budget"' in user
    assert '"approve"' not in user.split("Expense:")[0]


def test_over_with_non_json_answer_falls_back(payload, settings, fake_completer):
    payload["Status"] = "OVER"
    out = recommend(payload, settings, fake_completer("I think you should cut costs."))
    assert out["AIAction"] == "reallocate budget"
    assert out["ExpectedImpact"] == FALLBACK_IMPACT
    assert out["AITolerance"] == "strict"
    assert out["VarianceSummary"].startswith("Budget: 180000")


@pytest.mark.parametrize("answer", [
    {"AIAction": "approve"},
    {"AIAction": "flag"},
    {"AIAction": "CUT COSTS"},
    {"AIAction": ["cut costs"]},
    {},
])
def test_over_discards_actions_outside_allowed_set(payload, settings, fake_completer, answer):
    payload["Status"] = "OVER"
    out = recommend(payload, settings, fake_completer(json.dumps(answer)))
    assert out["AIAction"] == "reallocate budget"
    assert out["AIAction"] in OVER_ACTIONS


def test_invalid_fields_are_replaced_individually(payload, settings, fake_completer):
    payload["Status"] = "OVER"
    answer = {"VarianceSummary": "  ", "AITolerance": "extreme", "AIAction": "increase budget", "ExpectedImpact": 7}
    out = recommend(payload, settings, fake_completer(json.dumps(answer)))
    assert out["AIAction"] == "increase budget"
    assert out["AITolerance"] == "strict"
    assert out["ExpectedImpact"] == FALLBACK_IMPACT
    assert out["VarianceSummary"].startswith("Budget:")


def test_fenced_json_answer_is_accepted(payload, settings, fake_completer):
    payload["Status"] = "OVER"
    text = '```json\n{"AIAction": "increase budget"}\n```'
    assert recommend(payload, settings, fake_completer(text))["AIAction"] == "increase budget"


def test_upstream_error_propagates(payload, settings, fake_completer):
    payload["Status"] = "OVER"
    complete = fake_completer(error=UpstreamError("OpenAI request failed", 429, {"error": "rate limited"}))
    with pytest.raises(UpstreamError) as exc:
        recommend(payload, settings, complete)
    assert exc.value.status_code == 429
    assert exc.value.to_body()["details"] == {"error": "rate limited"}


def test_missing_api_key_is_configuration_error(payload):
    payload["Status"] = "OVER"
    with pytest.raises(ConfigurationError) as exc:
        recommend(payload, Settings(openai_api_key=None))
    assert exc.value.to_body() == {"error": "OPENAI_API_KEY not set"}


def test_identical_input_gives_identical_output(payload, settings, fake_completer):
    payload["Status"] = "OVER"
    text = json.dumps({"AIAction": "cut costs"})
    assert recommend(dict(payload), settings, fake_completer(text)) == recommend(dict(payload), settings, fake_completer(text))


def test_approve_only_policy_sends_watch_to_model(payload, fake_completer):
    settings = Settings(openai_api_key="sk-test", recommendation_policy="approve_only")
    complete = fake_completer(json.dumps({"AIAction": "reallocate budget"}))
    out = recommend(payload, settings, complete)
    assert len(complete.calls) == 1
    assert out["AIAction"] == "reallocate budget"


def test_approve_only_policy_watch_cannot_increase_budget(payload, fake_completer):
    settings = Settings(openai_api_key="sk-test", recommendation_policy="approve_only")
    out = recommend(payload, settings, fake_completer(json.dumps({"AIAction": "increase budget"})))
    assert out["AIAction"] == "flag"


def test_approve_only_policy_still_short_circuits_ok(payload, fake_completer):
    payload["Status"] = "OK"
    complete = fake_completer()
    out = recommend(payload, Settings(recommendation_policy="approve_only"), complete)
    assert out["AIAction"] == "approve"
    assert complete.calls == []


def test_decision_policy():
    assert DecisionPolicy.GUARDED.is_deterministic("WATCH")
    assert not DecisionPolicy.GUARDED.is_deterministic("OVER")
    assert not DecisionPolicy.APPROVE_ONLY.is_deterministic("WATCH")
    assert DecisionPolicy.APPROVE_ONLY.is_deterministic("OK")


def test_prompt_includes_headroom_candidates_and_request_strategy(payload, settings, fake_completer):
    payload["Status"] = "OVER"
    payload["HeadroomCandidates"] = '[{"Category": "Advertising/Events", "Headroom": 12000}]'
    payload["StrategyOverride"] = "Growth first."
    complete = fake_completer("{}")
    recommend(payload, settings, complete)
    _, user = complete.calls[0]
    assert "Optional headroom candidates" in user
    assert '"Headroom": 12000' in user
    assert "Corporate Strategy (ground truth):\nGrowth first." in user


def test_prompt_uses_default_strategy(payload, settings, fake_completer):
    payload["Status"] = "OVER"
    complete = fake_completer("{}")
    recommend(payload, settings, complete)
    _, user = complete.calls[0]
    assert "Optional headroom candidates" not in user
    assert "Payroll and Benefits are mission-critical" in user


def test_resolve_strategy_order():
    assert resolve_strategy("Operator text", "Caller text") == "Operator text"
    assert resolve_strategy("   ", "Caller text") == "Caller text"
    assert resolve_strategy(None, None) == DEFAULT_CORPORATE_STRATEGY


def test_parse_completion():
    assert parse_completion('{"AIAction": "flag"}') == {"AIAction": "flag"}
    with pytest.raises(ParseError):
        parse_completion("")
    with pytest.raises(ParseError):
        parse_completion('["cut costs"]')


def test_main_reads_payload_file(tmp_path, payload, capsys):
    path = tmp_path / "payload.json"
    path.write_text(json.dumps(payload))
    assert main([str(path)]) == 0
    assert json.loads(capsys.readouterr().out)["AIAction"] == "flag"


def test_main_reports_invalid_request(tmp_path, capsys):
    path = tmp_path / "payload.json"
    path.write_text(json.dumps({"Division": "Sales"}))
    assert main([str(path)]) == 1
    assert json.loads(capsys.readouterr().out)["error"].startswith("Missing required fields")
