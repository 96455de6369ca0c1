import logging

import requests

from errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


def _error_details(resp):
    try:
        return resp.json()
    except ValueError:
        return resp.text


def invoke_openai(messages, system_prompt, settings):
    if not settings.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY not set")

    body = {
        "model": settings.openai_model,
        "messages": [{"role": "system", "content": system_prompt}] + list(messages),
        "temperature": 0.2,
    }
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.openai_api_key}",
    }

    try:
        resp = requests.post(settings.openai_api_url, headers=headers, json=body,
                             timeout=settings.completion_timeout_seconds)
    except requests.Timeout as e:
        logger.warning("OpenAI request timed out after %ss", settings.completion_timeout_seconds)
        raise UpstreamError("OpenAI request failed", 504, str(e))
    except requests.ConnectionError as e:
        logger.warning("OpenAI connection failed: %s", e)
        raise UpstreamError("OpenAI request failed", 502, str(e))

    if not resp.ok:
        logger.warning("OpenAI returned HTTP %s", resp.status_code)
        raise UpstreamError("OpenAI request failed", resp.status_code, _error_details(resp))

    try:
        payload = resp.json()
    except ValueError:
        logger.warning("OpenAI returned a non-JSON envelope")
        return ""

    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices") or []
    if choices and isinstance(choices[0], dict):
        return ((choices[0].get("message") or {}).get("content") or "").strip()
    return ""
