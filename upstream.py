import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import requests
from config import logger, OPENAI_SESSIONS_URL
from utils import LambdaError

REQUEST_TIMEOUT_MS = 15_000
MAX_RETRIES = 2
BACKOFF_BASE_MS = 500

SESSION_MODEL = "gpt-4o-realtime-preview-2024-12-17"
SESSION_VOICE = "shimmer"
TRANSCRIPTION_MODEL = "whisper-1"


class UpstreamError(LambdaError):
    def __init__(self, detail: str, upstream_status: Optional[int] = None):
        details = {"detail": detail}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(502, "Failed to create realtime session.", details=details)
        self.detail = detail
        self.upstream_status = upstream_status


class UpstreamTransientError(UpstreamError):
    """5xx, timeout or transport failure; retried within the attempt budget"""
    pass


class UpstreamPermanentError(UpstreamError):
    """4xx or unusable response; surfaced without retrying"""
    pass


def build_session_payload() -> Dict[str, Any]:
    return {
        "model": SESSION_MODEL,
        "modalities": ["audio", "text"],
        "audio": {
            "output": {
                "voice": SESSION_VOICE,
                "format": "pcm16",
                "sample_rate": 24000,
            },
        },
        "phoneme_timestamps": True,
        "turn_detection": {"type": "server_vad"},
        "input_audio_transcription": {"model": TRANSCRIPTION_MODEL},
    }


def attach_instructions(session: Dict[str, Any], instructions: str) -> Dict[str, Any]:
    session["instructions"] = instructions
    return session


@dataclass
class RetryState:
    """Progress of one create_session call across its attempts."""
    max_attempts: int
    attempt: int = 0
    last_error: Optional[UpstreamError] = None
    elapsed_backoff_ms: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def next_backoff_ms(self) -> int:
        # attempt is already advanced past the failed one
        return BACKOFF_BASE_MS * 2 ** (self.attempt - 1)

    def record_failure(self, error: UpstreamError) -> None:
        self.last_error = error
        self.attempt += 1


class SessionForwarder:
    """
    Creates ephemeral realtime sessions upstream, retrying transient failures.

    The HTTP session and sleep function are injectable so the retry schedule
    can be driven by a fake transport and clock.
    """

    def __init__(
        self,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        url: str = OPENAI_SESSIONS_URL,
        timeout_ms: int = REQUEST_TIMEOUT_MS,
        max_retries: int = MAX_RETRIES,
    ):
        self.http = http or requests.Session()
        self.sleep = sleep
        self.url = url
        self.timeout_ms = timeout_ms
        self.max_retries = max_retries
        self.last_state: Optional[RetryState] = None

    def _attempt(self, api_key: str) -> Dict[str, Any]:
        try:
            response = self.http.post(
                self.url,
                json=build_session_payload(),
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout_ms / 1000,
            )
        except requests.exceptions.Timeout as e:
            raise UpstreamTransientError(f"Upstream request timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise UpstreamTransientError(str(e))

        if response.status_code >= 500:
            raise UpstreamTransientError(response.text, response.status_code)
        if response.status_code >= 400:
            raise UpstreamPermanentError(response.text, response.status_code)

        try:
            session = response.json()
        except ValueError:
            raise UpstreamPermanentError(f"Upstream returned invalid JSON: {response.text}", response.status_code)
        if not isinstance(session, dict):
            raise UpstreamPermanentError("Upstream returned a non-object session.", response.status_code)
        return session

    def create_session(self, api_key: str) -> Dict[str, Any]:
        """
        POST the fixed session payload upstream.

        Up to max_retries extra attempts are made for transient errors, with
        500 ms * 2**attempt backoff before each. Raises UpstreamPermanentError
        straight away, or the last UpstreamTransientError once attempts run out.

        timeout_ms is handed to requests, which applies it to the connect and
        to each socket read, not to the attempt as a whole. An upstream that
        keeps trickling bytes can hold one attempt open past timeout_ms; the
        Lambda function timeout is the hard ceiling in that case.
        """
        state = RetryState(max_attempts=self.max_retries + 1)
        self.last_state = state

        while True:
            try:
                return self._attempt(api_key)
            except UpstreamPermanentError as e:
                logger.error(f"Upstream rejected session request ({e.upstream_status}): {e.detail}")
                raise
            except UpstreamTransientError as e:
                state.record_failure(e)
                logger.error(
                    f"Upstream attempt {state.attempt}/{state.max_attempts} failed "
                    f"({e.upstream_status or 'transport'}): {e.detail}"
                )

            if state.exhausted:
                raise state.last_error

            delay_ms = state.next_backoff_ms()
            state.elapsed_backoff_ms += delay_ms
            self.sleep(delay_ms / 1000)
