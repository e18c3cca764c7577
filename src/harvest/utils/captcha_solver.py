"""
Remote CAPTCHA solving for the crawler.

When a listing page carries a CAPTCHA widget with a site key, the crawler
hands the key and page URL to a solving service and submits the returned
token with the next request. Every token comes from the service: a solver
that cannot reach it, or is refused, reports a failed SolveResult.

Usage:
    from harvest.utils.captcha_solver import CaptchaType, get_solver

    solver = get_solver("2captcha", api_key="your-api-key")
    result = await solver.solve(CaptchaType.RECAPTCHA_V2, sitekey="...", page_url=url)
    if result.status == SolverStatus.SOLVED:
        token = result.solution
"""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp

from harvest.constants import SOLVER_POLL_INTERVAL_SECONDS, SOLVER_TIMEOUT_SECONDS
from harvest.exceptions import SolverRejected

logger = logging.getLogger(__name__)


class CaptchaType(Enum):
    """Widget families the protection detector can name."""
    RECAPTCHA_V2 = "recaptcha_v2"
    RECAPTCHA_V3 = "recaptcha_v3"
    HCAPTCHA = "hcaptcha"
    TURNSTILE = "turnstile"  # Cloudflare
    IMAGE_CAPTCHA = "image_captcha"
    TEXT_CAPTCHA = "text_captcha"


class SolverStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SOLVED = "solved"
    FAILED = "failed"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


@dataclass
class SolveResult:
    """Outcome of one solve request, as reported to the challenge responder."""
    status: SolverStatus
    captcha_type: CaptchaType
    solution: Optional[str] = None  # token for the widget's response field
    task_id: Optional[str] = None
    solve_time_seconds: float = 0.0
    cost: float = 0.0  # USD, when the service reports it
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "captcha_type": self.captcha_type.value,
            "solution": self.solution,
            "task_id": self.task_id,
            "solve_time_seconds": self.solve_time_seconds,
            "cost": self.cost,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SolverStats:
    """Running totals for one solver instance."""
    requests: int = 0
    solved: int = 0
    failed: int = 0
    cost: float = 0.0

    def record(self, result: SolveResult) -> None:
        if result.status == SolverStatus.SOLVED:
            self.solved += 1
            self.cost += result.cost
        else:
            self.failed += 1

    @property
    def success_rate(self) -> float:
        return self.solved / self.requests if self.requests else 0.0


class BaseCaptchaSolver(ABC):
    """
    Submit-then-poll client for a remote solving service.

    Subclasses provide the two service calls (`_submit_task` and
    `_get_result`); `solve` runs the polling loop, applies the timeout and
    turns transport or protocol errors into a FAILED result.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout_seconds: int = SOLVER_TIMEOUT_SECONDS,
        poll_interval: float = SOLVER_POLL_INTERVAL_SECONDS,
    ):
        """
        Args:
            api_key: Credential for the solving service
            timeout_seconds: Upper bound on a single solve, polling included
            poll_interval: Pause before each result check
        """
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.poll_interval = poll_interval
        self.stats = SolverStats()

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Label used in logs and warnings."""

    @property
    @abstractmethod
    def supported_types(self) -> list[CaptchaType]:
        """Widget families this service accepts."""

    @abstractmethod
    async def _submit_task(
        self,
        captcha_type: CaptchaType,
        sitekey: str,
        page_url: str,
        **kwargs,
    ) -> str:
        """Register the widget with the service and return its task id."""

    @abstractmethod
    async def _get_result(self, task_id: str, captcha_type: CaptchaType) -> SolveResult:
        """Ask the service where a task stands."""

    async def solve(
        self,
        captcha_type: CaptchaType,
        sitekey: str,
        page_url: str,
        **kwargs,
    ) -> SolveResult:
        """
        Obtain a token for the widget on `page_url`.

        Args:
            captcha_type: Widget family reported by the detector
            sitekey: Public site key read from the page
            page_url: Page the widget was found on
            **kwargs: Service-specific task options (e.g. `action` for v3)

        Returns:
            SolveResult; only SOLVED results carry a solution
        """
        if captcha_type not in self.supported_types:
            return SolveResult(
                status=SolverStatus.UNSUPPORTED,
                captcha_type=captcha_type,
                error=f"{self.service_name} does not support {captcha_type.value}",
            )

        self.stats.requests += 1
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            task_id = await self._submit_task(
                captcha_type=captcha_type,
                sitekey=sitekey,
                page_url=page_url,
                **kwargs,
            )
            result = await self._poll(task_id, captcha_type, deadline=started + self.timeout_seconds)
        except (aiohttp.ClientError, asyncio.TimeoutError, SolverRejected, KeyError, ValueError) as e:
            logger.error(f"{self.service_name} solve error: {e}")
            result = SolveResult(
                status=SolverStatus.FAILED,
                captcha_type=captcha_type,
                error=str(e) or type(e).__name__,
            )

        result.solve_time_seconds = loop.time() - started
        self.stats.record(result)
        if result.status == SolverStatus.SOLVED:
            logger.info(
                f"{self.service_name} solved {captcha_type.value} "
                f"in {result.solve_time_seconds:.1f}s"
            )
        return result

    async def _poll(self, task_id: str, captcha_type: CaptchaType, deadline: float) -> SolveResult:
        loop = asyncio.get_running_loop()
        while loop.time() < deadline:
            await asyncio.sleep(self.poll_interval)
            result = await self._get_result(task_id, captcha_type)
            if result.status in (SolverStatus.SOLVED, SolverStatus.FAILED):
                return result

        return SolveResult(
            status=SolverStatus.TIMEOUT,
            captcha_type=captcha_type,
            task_id=task_id,
            error=f"Timeout after {self.timeout_seconds}s",
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "service": self.service_name,
            "total_requests": self.stats.requests,
            "successful_solves": self.stats.solved,
            "failed_solves": self.stats.failed,
            "success_rate": self.stats.success_rate,
            "total_cost_usd": self.stats.cost,
        }


# 2Captcha `method` and site-key parameter per widget family
TWOCAPTCHA_METHODS = {
    CaptchaType.RECAPTCHA_V2: ("userrecaptcha", "googlekey"),
    CaptchaType.RECAPTCHA_V3: ("userrecaptcha", "googlekey"),
    CaptchaType.HCAPTCHA: ("hcaptcha", "sitekey"),
    CaptchaType.TURNSTILE: ("turnstile", "sitekey"),
}


class TwoCaptchaSolver(BaseCaptchaSolver):
    """
    Client for the 2Captcha in.php/res.php API.

    The API key falls back to TWOCAPTCHA_API_KEY.
    See https://2captcha.com/2captcha-api
    """

    API_BASE = "https://2captcha.com"
    REQUEST_TIMEOUT_SECONDS = 30
    COST_PER_SOLVE = 0.003  # approximate

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout_seconds: int = SOLVER_TIMEOUT_SECONDS,
        poll_interval: float = SOLVER_POLL_INTERVAL_SECONDS,
    ):
        super().__init__(
            api_key=api_key or os.getenv("TWOCAPTCHA_API_KEY"),
            timeout_seconds=timeout_seconds,
            poll_interval=poll_interval,
        )

    @property
    def service_name(self) -> str:
        return "2Captcha"

    @property
    def supported_types(self) -> list[CaptchaType]:
        return list(TWOCAPTCHA_METHODS)

    def _build_submit_params(
        self,
        captcha_type: CaptchaType,
        sitekey: str,
        page_url: str,
        **kwargs,
    ) -> Dict[str, Any]:
        try:
            method, key_param = TWOCAPTCHA_METHODS[captcha_type]
        except KeyError:
            raise ValueError(f"Unsupported captcha type: {captcha_type}") from None

        params: Dict[str, Any] = {
            "key": self.api_key,
            "json": 1,
            "method": method,
            key_param: sitekey,
            "pageurl": page_url,
        }
        if captcha_type == CaptchaType.RECAPTCHA_V2:
            params["invisible"] = 1 if kwargs.get("invisible") else 0
        elif captcha_type == CaptchaType.RECAPTCHA_V3:
            params["version"] = "v3"
            params["action"] = kwargs.get("action", "verify")
            params["min_score"] = kwargs.get("min_score", 0.3)
        return params

    async def _call(self, method: str, path: str, **request_kwargs) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.REQUEST_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(method, f"{self.API_BASE}/{path}", **request_kwargs) as resp:
                data = await resp.json(content_type=None)
        self._check_reply(data)
        return data

    async def _submit_task(
        self,
        captcha_type: CaptchaType,
        sitekey: str,
        page_url: str,
        **kwargs,
    ) -> str:
        params = self._build_submit_params(captcha_type, sitekey, page_url, **kwargs)
        data = await self._call("POST", "in.php", data=params)

        if data.get("status") != 1:
            raise SolverRejected(f"2Captcha submit error: {data.get('error_text') or data.get('request')}")
        return data["request"]

    async def _get_result(self, task_id: str, captcha_type: CaptchaType) -> SolveResult:
        params = {"key": self.api_key, "action": "get", "id": task_id, "json": 1}
        data = await self._call("GET", "res.php", params=params)
        return self._parse_result(data, task_id, captcha_type)

    @staticmethod
    def _check_reply(data: Any) -> None:
        """2Captcha answers with a JSON object when json=1 is sent."""
        if not isinstance(data, dict):
            raise SolverRejected(f"2Captcha returned an unexpected reply: {data!r:.100}")

    @classmethod
    def _parse_result(cls, data: Dict[str, Any], task_id: str, captcha_type: CaptchaType) -> SolveResult:
        if data.get("status") == 1:
            return SolveResult(
                status=SolverStatus.SOLVED,
                captcha_type=captcha_type,
                solution=data["request"],
                task_id=task_id,
                cost=cls.COST_PER_SOLVE,
            )

        answer = data.get("request", "Unknown error")
        if answer == "CAPCHA_NOT_READY":
            return SolveResult(status=SolverStatus.PROCESSING, captcha_type=captcha_type, task_id=task_id)
        return SolveResult(
            status=SolverStatus.FAILED,
            captcha_type=captcha_type,
            task_id=task_id,
            error=answer,
        )


SOLVERS = {
    "2captcha": TwoCaptchaSolver,
}


def get_solver(
    service: str = "2captcha",
    api_key: Optional[str] = None,
    **kwargs,
) -> BaseCaptchaSolver:
    """
    Build the solver registered under `service` (case-insensitive).

    Raises:
        ValueError: If no solver is registered under that name
    """
    try:
        solver_class = SOLVERS[service.lower()]
    except KeyError:
        raise ValueError(f"Unknown solver service: {service}") from None
    return solver_class(api_key=api_key, **kwargs)
