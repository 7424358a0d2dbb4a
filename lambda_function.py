from typing import Any, Dict, Optional
from config import logger, load_settings, Settings
from utils import create_response, LambdaError, ConfigurationError, parse_event, get_client_key
from origin_guard import extract_origin, check_origin
from rate_limit_logic import RateLimitLedger, check_rate_limit, get_ledger
from upstream import SessionForwarder, attach_instructions

_forwarder: Optional[SessionForwarder] = None


def get_forwarder() -> SessionForwarder:
    global _forwarder
    if _forwarder is None:
        _forwarder = SessionForwarder()
    return _forwarder


def create_realtime_session(
    event: Dict[str, Any],
    settings: Settings,
    ledger: Optional[RateLimitLedger] = None,
    forwarder: Optional[SessionForwarder] = None,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    if not settings.api_key:
        raise ConfigurationError("OPENAI_API_KEY is not configured.")

    parsed_event = parse_event(event)
    headers = parsed_event['headers']

    origin = extract_origin(headers)
    check_origin(origin, settings.allowed_origins)

    client_key = get_client_key(headers, parsed_event['source_ip'], origin)
    if ledger is None:
        ledger = get_ledger(settings.rate_limit_table, settings.ttl_s)
    check_rate_limit(client_key, ledger, now)

    if forwarder is None:
        forwarder = get_forwarder()
    session = forwarder.create_session(settings.api_key)
    logger.info(f"Created realtime session {session.get('id')} for {client_key}")
    return attach_instructions(session, settings.instructions)


def lambda_handler(event, context):
    try:
        settings = load_settings()
        result = create_realtime_session(event, settings)
        return create_response(200, result)

    except LambdaError as e:
        return create_response(e.status_code, e.to_body(), e.headers)
    except Exception as e:
        logger.error(f"An unexpected error occurred: {e}", exc_info=True)
        return create_response(500, {"message": str(e), "error": type(e).__name__})
