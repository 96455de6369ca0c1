import base64
import json
import logging

from errors import InternalError, InvalidRequest, MethodNotAllowed, RecommendationError
from recommender import recommend
from settings import SETTINGS

logging.getLogger().setLevel(SETTINGS.log_level)
logger = logging.getLogger(__name__)

def _response(status_code, payload):
    return {"statusCode": status_code, "headers": {"Content-Type": "application/json"}, "body": json.dumps(payload)}

def _method(event):
    method = event.get("httpMethod") or ((event.get("requestContext") or {}).get("http") or {}).get("method")
    # direct invocation carries no verb
    return (method or "POST").upper()

def _payload(event):
    if "body" not in event and not _method_given(event):
        return event
    body = event.get("body")
    if body is None or body == "":
        return {}
    if isinstance(body, dict):
        return body
    if event.get("isBase64Encoded"):
        try:
            body = base64.b64decode(body).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            raise InvalidRequest("Request body is not valid base64")
    try:
        obj = json.loads(body)
    except ValueError:
        raise InvalidRequest("Request body must be a JSON object")
    if not isinstance(obj, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return obj

def _method_given(event):
    return bool(event.get("httpMethod") or (event.get("requestContext") or {}).get("http"))

def lambda_handler(event, context):
    try:
        if not isinstance(event, dict):
            raise InvalidRequest("Request body must be a JSON object")
        if _method(event) != "POST":
            raise MethodNotAllowed()
        result = recommend(_payload(event))
    except RecommendationError as e:
        if e.status_code >= 500:
            logger.warning("Request failed (%s): %s", e.status_code, e.message)
        return _response(e.status_code, e.to_body())
    except Exception as e:
        logger.exception("Unhandled error while building recommendation")
        err = InternalError(e)
        return _response(err.status_code, err.to_body())
    return _response(200, result)
