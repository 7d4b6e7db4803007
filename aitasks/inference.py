import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import quote

import httpx
from django.conf import settings

from .errors import InferenceError

logger = logging.getLogger(__name__)

# The backend takes the input path as a single URL segment.
PATH_SEPARATOR_PLACEHOLDER = "+"
OPTION_PAIR_SEPARATOR = "-"
OPTION_LIST_SEPARATOR = ","

RESULT_PATH_KEYS = ("output_path", "result_path", "path")


def encode_path(path) -> str:
    """'/data/out/t1/clip-audio.wav' -> '+data+out+t1+clip-audio.wav'"""
    return quote(str(path).replace("/", PATH_SEPARATOR_PLACEHOLDER), safe=PATH_SEPARATOR_PLACEHOLDER)


def encode_options(options: Mapping[str, Any]) -> str:
    """{'language': 'en', 'format': 'srt'} -> 'language-en,format-srt'"""
    pairs = [f"{key}{OPTION_PAIR_SEPARATOR}{value}" for key, value in options.items()]
    return quote(OPTION_LIST_SEPARATOR.join(pairs), safe=OPTION_PAIR_SEPARATOR + OPTION_LIST_SEPARATOR + ".")


@dataclass(frozen=True)
class InferenceResult:
    operation: str
    output_path: Path
    confirmed: bool                 # False when the backend did not name the artifact
    payload: dict = field(default_factory=dict)


class InferenceClient:
    """
    One blocking POST per stage to the inference backend.

    Retries are bounded by `max_retries` and only apply to transport errors and
    5xx responses; 4xx responses fail immediately.
    """

    def __init__(self, base_url: str, *, timeout: float = 600, max_retries: int = 0,
                 transport: httpx.BaseTransport | None = None):
        if not base_url:
            raise ValueError("Inference backend base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "InferenceClient":
        return cls(
            settings.AI_SERVICE_URL,
            timeout=settings.AI_SERVICE_TIMEOUT,
            max_retries=settings.AI_SERVICE_MAX_RETRIES,
        )

    def url_for(self, operation: str, input_path, options: Mapping[str, Any]) -> str:
        return f"{self.base_url}/{operation}/{encode_path(input_path)}/{encode_options(options)}"

    def request(self, operation: str, input_path, options: Mapping[str, Any], *,
                expected_output: Path) -> InferenceResult:
        url = self.url_for(operation, input_path, options)
        attempts = self.max_retries + 1
        response = None
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(1, attempts + 1):
                try:
                    logger.info("Inference %s attempt %d/%d: %s", operation, attempt, attempts, url)
                    response = client.post(url)
                    response.raise_for_status()
                    break
                except httpx.HTTPStatusError as e:
                    if e.response.status_code < 500 or attempt == attempts:
                        raise InferenceError(
                            f"{operation} request failed with HTTP {e.response.status_code}: {e.response.text[:500]}"
                        ) from e
                    logger.warning("Inference %s got HTTP %s, retrying", operation, e.response.status_code)
                except httpx.HTTPError as e:
                    if attempt == attempts:
                        raise InferenceError(f"{operation} request failed: {e}") from e
                    logger.warning("Inference %s transport error (%s), retrying", operation, e)

        payload = self._json_object(response)
        reported = next((payload[k] for k in RESULT_PATH_KEYS if payload.get(k)), None)
        if reported:
            if not isinstance(reported, str):
                raise InferenceError(f"{operation} returned an unusable artifact location: {reported!r}")
            return InferenceResult(operation, Path(reported), True, payload)

        logger.warning(
            "Inference %s response did not name its artifact; assuming %s", operation, expected_output
        )
        return InferenceResult(operation, Path(expected_output), False, payload)

    @staticmethod
    def _json_object(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
