"""
Base HTTP client with robust error handling.

Thread-safe, with timeouts, retries, weighted rate limiting and
deduplication of identical in-flight read requests.

orjson handles JSON encoding and parsing.
"""

import hashlib
import time
from typing import Any, Dict, Optional
from urllib.parse import urljoin
import logging

import orjson
import requests
from requests.adapters import HTTPAdapter

from ..config import HyperliquidSettings
from ..exceptions import (
    APIError,
    TimeoutError,
    RateLimitError,
    AuthenticationError
)
from ..metrics import get_metrics
from ..utils.rate_limiter import RateLimiter
from ..utils.retry import RetryStrategy, CircuitBreaker
from ..utils.singleflight import SingleFlight

logger = logging.getLogger(__name__)

WEIGHT_BUDGET_KEY = "REST:weight"


class BaseAPIClient:
    """
    Base HTTP client with error handling, retries, and rate limiting.

    Thread-safe for concurrent use.
    """

    def __init__(
        self,
        base_url: str,
        settings: HyperliquidSettings,
        rate_limiter: Optional[RateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize base API client.

        Args:
            base_url: API base URL
            settings: Client settings
            rate_limiter: Optional rate limiter
            circuit_breaker: Optional circuit breaker
        """
        self.base_url = base_url
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker

        self.retry_strategy = RetryStrategy(
            max_retries=settings.max_retries,
            base_delay=1.0,
            max_delay=settings.retry_backoff_max,
            exponential_base=settings.retry_backoff_base,
            circuit_breaker=circuit_breaker
        )

        self.session = requests.Session()

        adapter = HTTPAdapter(
            pool_connections=settings.pool_connections,
            pool_maxsize=settings.pool_maxsize,
            max_retries=0,  # RetryStrategy owns retries
            pool_block=False
        )
        self.session.mount('https://', adapter)
        self.session.mount('http://', adapter)

        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Connection": "keep-alive",
        })

        self.timeout = (settings.connect_timeout, settings.request_timeout)

        self._request_counter = 0
        self._inflight = SingleFlight()
        self._metrics = get_metrics()

    def _get_request_key(self, path: str, json_data: Optional[Dict[str, Any]]) -> str:
        """Deterministic hash of a request body for deduplication."""
        body = orjson.dumps(json_data or {}, option=orjson.OPT_SORT_KEYS).decode('utf-8')
        key_str = f"{path}|{body}"
        return hashlib.sha256(key_str.encode()).hexdigest()[:16]

    def _make_request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        weight: int = 1
    ) -> Any:
        """
        Make HTTP request with error handling.

        Args:
            method: HTTP method
            path: Request path
            json_data: JSON body
            headers: Additional headers
            weight: Cost charged against the IP weight budget

        Returns:
            Decoded JSON response

        Raises:
            APIError: On HTTP errors
            TimeoutError: On timeout
            RateLimitError: On rate limit
        """
        url = urljoin(self.base_url, path)

        self._request_counter += 1
        request_type = (json_data or {}).get("type")
        if isinstance(request_type, dict):
            request_type = None
        action_type = ((json_data or {}).get("action") or {}).get("type")
        label = request_type or action_type or "unknown"
        request_id = f"{method}:{path}:{label}:{self._request_counter}"

        if self.rate_limiter:
            try:
                self.rate_limiter.acquire(WEIGHT_BUDGET_KEY, weight=weight, timeout=30.0)
            except RateLimitError as e:
                logger.warning(f"Rate limit hit for {request_id}: {e}")
                raise

        if self.settings.log_requests:
            logger.debug(f"[{request_id}] {method} {url} weight={weight}")

        start = time.time()
        status = "error"
        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                data=orjson.dumps(json_data) if json_data is not None else None,
                timeout=self.timeout
            )

            if response.status_code >= 400:
                error_msg = f"{method} {path} failed with {response.status_code}"
                error_data = None
                try:
                    error_data = orjson.loads(response.content)
                    error_msg += f": {error_data}"
                except orjson.JSONDecodeError as e:
                    logger.debug(f"Could not parse error response as JSON: {e}")
                    error_msg += f": {response.text[:200]}"

                status = str(response.status_code)
                if response.status_code in (401, 403):
                    raise AuthenticationError(error_msg)
                elif response.status_code == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        error_msg,
                        endpoint=path,
                        retry_after=float(retry_after) if retry_after else None
                    )
                else:
                    raise APIError(
                        error_msg,
                        status_code=response.status_code,
                        response=error_data
                    )

            try:
                result = orjson.loads(response.content)
            except orjson.JSONDecodeError as e:
                logger.error(f"Invalid JSON response: {response.text[:200]}")
                raise APIError(f"Invalid JSON response: {e}", status_code=response.status_code)

            status = "ok"
            return result

        except requests.exceptions.Timeout as e:
            logger.error(f"Request timeout: {request_id}")
            raise TimeoutError(f"Request timeout: {e}") from e

        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error: {request_id}")
            raise APIError(f"Connection error: {e}") from e

        except requests.exceptions.RequestException as e:
            logger.error(f"Unexpected request error: {request_id}: {e}")
            raise APIError(f"Unexpected error: {e}") from e

        finally:
            self._metrics.track_api_request(path, label, status)
            self._metrics.track_api_latency(path, time.time() - start)

    def post(
        self,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        weight: int = 1,
        retry: bool = True,
        dedupe: bool = False
    ) -> Any:
        """
        Make POST request.

        Args:
            path: Request path
            json_data: JSON body
            headers: Additional headers
            weight: Rate limit weight
            retry: Whether to retry on failure
            dedupe: Share the outcome with identical concurrent requests
                (read-only requests only)

        Returns:
            Decoded JSON response
        """
        def send():
            if retry:
                return self.retry_strategy.execute(
                    self._make_request,
                    "POST",
                    path,
                    json_data=json_data,
                    headers=headers,
                    weight=weight
                )
            if self.circuit_breaker:
                return self.circuit_breaker.call(
                    self._make_request,
                    "POST",
                    path,
                    json_data=json_data,
                    headers=headers,
                    weight=weight
                )
            return self._make_request(
                "POST", path, json_data=json_data, headers=headers, weight=weight
            )

        if dedupe:
            return self._inflight.do(self._get_request_key(path, json_data), send)
        return send()

    def close(self) -> None:
        """Close session and cleanup resources."""
        self.session.close()
        logger.info("API client session closed")
