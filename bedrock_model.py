import json
import logging
from functools import lru_cache

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, ReadTimeoutError

from errors import ConfigurationError, UpstreamError
from settings import SETTINGS

logger = logging.getLogger(__name__)

@lru_cache(maxsize=None)
def bedrock_client(region, timeout_seconds):
    return boto3.client(
        "bedrock-runtime",
        region_name=region,
        config=Config(read_timeout=timeout_seconds, retries={"max_attempts": 2, "mode": "standard"}),
    )

def _as_user_text(messages):
    return "\n".join([m.get("content","") for m in messages if m.get("role") == "user"])

def _request_body(model_id, messages, system_prompt):
    if model_id.startswith("anthropic."):
        return {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": 600,
            "messages": [{"role": "user", "content": _as_user_text(messages)}],
            "system": system_prompt,
            "temperature": 0.2
        }
    if model_id.startswith("openai."):
        return {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": _as_user_text(messages)}
            ],
            "temperature": 0.2,
            "max_tokens": 600
        }
    return {
        "inputText": f"{system_prompt}\n\n{_as_user_text(messages)}",
        "textGenerationConfig": {"maxTokenCount": 600, "temperature": 0.2}
    }

def _response_text(model_id, payload):
    if model_id.startswith("anthropic."):
        parts = payload.get("content", [])
        out = [p.get("text","") for p in parts if isinstance(p, dict)]
        return "\n".join([s for s in out if s]).strip()
    if model_id.startswith("openai."):
        choices = payload.get("choices") or []
        if choices and isinstance(choices[0], dict) and "message" in choices[0]:
            return (choices[0]["message"].get("content") or "").strip()
        return (payload.get("output_text") or "").strip()
    if payload.get("results"):
        return (payload["results"][0].get("outputText") or "").strip()
    return (payload.get("outputText") or "").strip()

def invoke_bedrock(messages, system_prompt, settings=SETTINGS):
    model_id = settings.bedrock_model_id
    try:
        resp = bedrock_client(settings.bedrock_region, settings.completion_timeout_seconds).invoke_model(
            modelId=model_id,
            contentType="application/json",
            accept="application/json",
            body=json.dumps(_request_body(model_id, messages, system_prompt)).encode("utf-8"),
        )
    except NoCredentialsError:
        raise ConfigurationError("AWS credentials not set")
    except ClientError as e:
        status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 502
        logger.warning("Bedrock invoke_model failed with HTTP %s", status)
        raise UpstreamError("Bedrock request failed", status, e.response.get("Error"))
    except ReadTimeoutError as e:
        logger.warning("Bedrock invoke_model timed out")
        raise UpstreamError("Bedrock request failed", 504, str(e))
    except BotoCoreError as e:
        logger.warning("Bedrock invoke_model transport error: %s", e)
        raise UpstreamError("Bedrock request failed", 502, str(e))

    try:
        payload = json.loads(resp["body"].read())
    except ValueError:
        logger.warning("Bedrock returned a non-JSON envelope")
        return ""
    if not isinstance(payload, dict):
        return ""
    return _response_text(model_id, payload)
