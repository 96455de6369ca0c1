DEFAULT_CORPORATE_STRATEGY = """
Corporate Strategy for Resource Allocation (Ground Truth):
- Protect "keep-the-lights-on" and risk-critical spending:
  - Payroll and Benefits are mission-critical: avoid cutting unless extreme. If OVER, prefer budget increase or reallocation from non-critical areas.
  - Security & Compliance is risk-critical: do not cut below minimum; if OVER, justify increase or reallocate from lower priority areas.
- Prioritize growth and product differentiation:
  - R&D Investment is strategically important: if OVER, prefer reallocation or budget increase if it supports roadmap milestones.
  - Cloud Compute & Storage should be optimized: if OVER, first recommend cost optimization (rightsizing/reservations), then reallocate, then increase budget if usage is tied to growth.
- Revenue acceleration and go-to-market efficiency:
  - Advertising/Events can be tuned quickly: if OVER, prefer cut costs (reduce spend) unless strong ROI evidence is noted.
  - Professional Services is delivery capacity: if OVER, prefer reallocate or increase budget if tied to committed client delivery.
- Data tooling:
  - Market Data/Analytics Subscriptions should be rationalized: if OVER, prefer cut costs (remove unused seats/tools) or reallocate if essential for product goals.

General rules:
- If Status is OK: approve (no action needed).
- If Status is WATCH: flag + preventative suggestion (only recommend reallocation if it prevents near-term OVER).
- If Status is OVER: pick the best action using the strategy above:
  - "cut costs" if category is discretionary/tunable (e.g., Advertising/Events, some subscriptions)
  - "increase budget" if category is mission-critical or ROI-justified (Payroll/Benefits/Security or R&D milestone)
  - "reallocate budget" if there is known headroom elsewhere or if shifting aligns with strategy priorities
"""


def resolve_strategy(env_override=None, request_override=None) -> str:
    for candidate in (env_override, request_override):
        if candidate and str(candidate).strip():
            return str(candidate).strip()
    return DEFAULT_CORPORATE_STRATEGY
