import json
from typing import Dict, Any, Optional
from config import logger


class LambdaError(Exception):
    """Error carrying the HTTP status the handler should answer with"""

    def __init__(
        self,
        status_code: int,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details or {}
        self.headers = headers or {}

    def to_body(self) -> Dict[str, Any]:
        body = {"message": self.message, "error": type(self).__name__}
        body.update(self.details)
        return body


class ConfigurationError(LambdaError):
    """Required configuration is missing; fatal for the request"""

    def __init__(self, message: str):
        super().__init__(500, message)


class AdmissionError(LambdaError):
    """Request refused before reaching the upstream API"""
    pass


def create_response(
    status_code: int,
    body: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Build an API Gateway proxy response

    Args:
        status_code (int): HTTP status code
        body (Dict[str, Any]): JSON-serializable response body
        headers (Optional[Dict[str, str]]): Extra response headers

    Returns:
        Dict[str, Any]: Response in the Lambda proxy integration format
    """
    response_headers = {"Content-Type": "application/json"}
    if headers:
        response_headers.update(headers)
    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(body),
    }


def parse_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Parse an event from either API Gateway (REST or HTTP API) or a direct Lambda invocation

    Args:
        event (Dict[str, Any]): The event to parse

    Returns:
        Dict[str, Any]: Parsed event data with lower-cased 'headers' and the
        caller's 'source_ip' (None when unknown)

    Example API Gateway event:
    {
        "headers": {
            "Origin": "https://app.example.com",
            "X-Forwarded-For": "203.0.113.7, 10.0.0.1"
        },
        "requestContext": {
            "identity": {"sourceIp": "203.0.113.7"}
        }
    }

    Example direct Lambda invocation:
    {
        "headers": {"origin": "http://localhost:3000"}
    }
    """
    try:
        raw_headers = event.get('headers') or {}
        headers = {
            str(name).lower(): value
            for name, value in raw_headers.items()
            if value is not None
        }

        request_context = event.get('requestContext') or {}
        # REST APIs put the caller under identity, HTTP APIs (v2) under http
        source_ip = (
            (request_context.get('identity') or {}).get('sourceIp')
            or (request_context.get('http') or {}).get('sourceIp')
        )

        return {"headers": headers, "source_ip": source_ip}

    except Exception as e:
        logger.error(f"Error parsing event: {str(e)}")
        raise


def get_client_key(headers: Dict[str, str], source_ip: Optional[str], origin: Optional[str]) -> str:
    """
    Derive the rate limit key for a caller

    The first present of: X-Forwarded-For (first hop), the socket address,
    the origin, or "unknown".
    """
    forwarded_for = headers.get('x-forwarded-for', '')
    first_hop = forwarded_for.split(',')[0].strip()
    return first_hop or source_ip or origin or "unknown"
