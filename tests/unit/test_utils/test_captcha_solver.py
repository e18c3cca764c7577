"""Unit tests for the CAPTCHA solver framework."""

import pytest
from unittest.mock import AsyncMock, patch

from harvest.exceptions import SolverRejected
from harvest.utils.captcha_solver import (
    BaseCaptchaSolver,
    TwoCaptchaSolver,
    CaptchaType,
    SolverStatus,
    SolveResult,
    get_solver,
)


class ScriptedSolver(BaseCaptchaSolver):
    """Solver whose remote answers are scripted by the test."""

    def __init__(self, results, submit_error=None):
        super().__init__(api_key="test-key", timeout_seconds=10, poll_interval=0)
        self._results = list(results)
        self._submit_error = submit_error
        self.submitted = []

    @property
    def service_name(self) -> str:
        return "Scripted"

    @property
    def supported_types(self) -> list[CaptchaType]:
        return [CaptchaType.RECAPTCHA_V2, CaptchaType.HCAPTCHA]

    async def _submit_task(self, captcha_type, sitekey, page_url, **kwargs) -> str:
        if self._submit_error:
            raise self._submit_error
        self.submitted.append((captcha_type, sitekey, page_url))
        return "task-1"

    async def _get_result(self, task_id, captcha_type) -> SolveResult:
        status, solution, error = self._results.pop(0)
        return SolveResult(
            status=status,
            captcha_type=captcha_type,
            solution=solution,
            task_id=task_id,
            error=error,
        )


class TestCaptchaType:
    """Tests for CaptchaType enum."""

    def test_captcha_types_exist(self):
        """Verify all captcha types are defined."""
        assert CaptchaType.RECAPTCHA_V2.value == "recaptcha_v2"
        assert CaptchaType.RECAPTCHA_V3.value == "recaptcha_v3"
        assert CaptchaType.HCAPTCHA.value == "hcaptcha"
        assert CaptchaType.TURNSTILE.value == "turnstile"
        assert CaptchaType.IMAGE_CAPTCHA.value == "image_captcha"
        assert CaptchaType.TEXT_CAPTCHA.value == "text_captcha"


class TestSolveResult:
    """Tests for SolveResult dataclass."""

    def test_to_dict(self):
        """Test serialization to dictionary."""
        result = SolveResult(
            status=SolverStatus.SOLVED,
            captcha_type=CaptchaType.HCAPTCHA,
            solution="token",
            task_id="42",
            cost=0.003,
        )

        data = result.to_dict()

        assert data["status"] == "solved"
        assert data["captcha_type"] == "hcaptcha"
        assert data["solution"] == "token"
        assert data["task_id"] == "42"
        assert "timestamp" in data


class TestBaseCaptchaSolver:
    """Tests for the polling loop shared by all solvers."""

    @pytest.mark.asyncio
    async def test_polls_until_solved(self):
        """Processing answers are polled past until a solution arrives."""
        solver = ScriptedSolver([
            (SolverStatus.PROCESSING, None, None),
            (SolverStatus.PROCESSING, None, None),
            (SolverStatus.SOLVED, "real-token", None),
        ])

        result = await solver.solve(
            captcha_type=CaptchaType.RECAPTCHA_V2,
            sitekey="site-key",
            page_url="https://example.com",
        )

        assert result.status == SolverStatus.SOLVED
        assert result.solution == "real-token"
        assert solver.submitted == [(CaptchaType.RECAPTCHA_V2, "site-key", "https://example.com")]

    @pytest.mark.asyncio
    async def test_failed_result_is_returned(self):
        """A failure reported by the service ends polling."""
        solver = ScriptedSolver([(SolverStatus.FAILED, None, "ERROR_CAPTCHA_UNSOLVABLE")])

        result = await solver.solve(CaptchaType.HCAPTCHA, "key", "https://example.com")

        assert result.status == SolverStatus.FAILED
        assert result.error == "ERROR_CAPTCHA_UNSOLVABLE"
        assert solver.get_stats()["failed_solves"] == 1

    @pytest.mark.asyncio
    async def test_submit_error_becomes_failed_result(self):
        """Errors raised while submitting are reported, not raised."""
        solver = ScriptedSolver([], submit_error=SolverRejected("ERROR_ZERO_BALANCE"))

        result = await solver.solve(CaptchaType.RECAPTCHA_V2, "key", "https://example.com")

        assert result.status == SolverStatus.FAILED
        assert "ERROR_ZERO_BALANCE" in result.error

    @pytest.mark.asyncio
    async def test_unsupported_type(self):
        """Types outside supported_types are rejected without a request."""
        solver = ScriptedSolver([])

        result = await solver.solve(CaptchaType.TURNSTILE, "key", "https://example.com")

        assert result.status == SolverStatus.UNSUPPORTED
        assert solver.submitted == []

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Polling stops once the timeout has elapsed."""
        solver = ScriptedSolver([(SolverStatus.PROCESSING, None, None)] * 50)
        solver.timeout_seconds = 0

        result = await solver.solve(CaptchaType.RECAPTCHA_V2, "key", "https://example.com")

        assert result.status == SolverStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_stats_update_after_solve(self):
        """Test stats update after solving."""
        solver = ScriptedSolver([(SolverStatus.SOLVED, "token", None)])

        await solver.solve(CaptchaType.RECAPTCHA_V2, "key", "https://example.com")
        stats = solver.get_stats()

        assert stats["service"] == "Scripted"
        assert stats["total_requests"] == 1
        assert stats["successful_solves"] == 1
        assert stats["success_rate"] == 1.0


class TestTwoCaptchaSolver:
    """Tests for TwoCaptchaSolver."""

    def test_service_name(self):
        """Test service name property."""
        solver = TwoCaptchaSolver(api_key="test-key")
        assert solver.service_name == "2Captcha"

    def test_supported_types(self):
        """Test supported captcha types."""
        solver = TwoCaptchaSolver(api_key="test-key")

        assert CaptchaType.RECAPTCHA_V2 in solver.supported_types
        assert CaptchaType.RECAPTCHA_V3 in solver.supported_types
        assert CaptchaType.HCAPTCHA in solver.supported_types
        assert CaptchaType.TURNSTILE in solver.supported_types
        assert CaptchaType.IMAGE_CAPTCHA not in solver.supported_types

    def test_api_key_from_env(self):
        """Test API key loaded from environment."""
        with patch.dict("os.environ", {"TWOCAPTCHA_API_KEY": "env-key"}):
            solver = TwoCaptchaSolver()
            assert solver.api_key == "env-key"

    def test_submit_params_recaptcha_v3(self):
        """reCAPTCHA v3 tasks carry the version and action."""
        solver = TwoCaptchaSolver(api_key="test-key")

        params = solver._build_submit_params(
            CaptchaType.RECAPTCHA_V3, "site-key", "https://example.com", action="login"
        )

        assert params["method"] == "userrecaptcha"
        assert params["version"] == "v3"
        assert params["googlekey"] == "site-key"
        assert params["action"] == "login"

    def test_submit_params_turnstile(self):
        """Turnstile tasks use the turnstile method and sitekey parameter."""
        solver = TwoCaptchaSolver(api_key="test-key")

        params = solver._build_submit_params(CaptchaType.TURNSTILE, "0x4AAA", "https://example.com")

        assert params["method"] == "turnstile"
        assert params["sitekey"] == "0x4AAA"
        assert params["pageurl"] == "https://example.com"

    def test_parse_result_not_ready(self):
        """CAPCHA_NOT_READY keeps the task processing."""
        result = TwoCaptchaSolver._parse_result(
            {"status": 0, "request": "CAPCHA_NOT_READY"}, "7", CaptchaType.HCAPTCHA
        )
        assert result.status == SolverStatus.PROCESSING

    def test_parse_result_solved_keeps_type(self):
        """Solved results report the requested captcha type."""
        result = TwoCaptchaSolver._parse_result(
            {"status": 1, "request": "solution-token"}, "7", CaptchaType.TURNSTILE
        )
        assert result.status == SolverStatus.SOLVED
        assert result.solution == "solution-token"
        assert result.captcha_type == CaptchaType.TURNSTILE

    def test_parse_result_error(self):
        """Other answers are failures carrying the service's error code."""
        result = TwoCaptchaSolver._parse_result(
            {"status": 0, "request": "ERROR_WRONG_CAPTCHA_ID"}, "7", CaptchaType.RECAPTCHA_V2
        )
        assert result.status == SolverStatus.FAILED
        assert result.error == "ERROR_WRONG_CAPTCHA_ID"

    @pytest.mark.parametrize("reply", ["OK|123", [1, "abc"], None, 7])
    def test_non_object_reply_rejected(self, reply):
        """Replies that are not JSON objects are refused before use."""
        with pytest.raises(SolverRejected, match="unexpected reply"):
            TwoCaptchaSolver._check_reply(reply)

    def test_object_reply_accepted(self):
        TwoCaptchaSolver._check_reply({"status": 1, "request": "42"})

    @pytest.mark.asyncio
    async def test_solve_with_patched_transport(self):
        """solve() wires submit and poll together."""
        solver = TwoCaptchaSolver(api_key="test-key", poll_interval=0)
        solved = SolveResult(
            status=SolverStatus.SOLVED,
            captcha_type=CaptchaType.RECAPTCHA_V2,
            solution="token-123",
        )

        with patch.object(solver, "_submit_task", AsyncMock(return_value="99")), \
                patch.object(solver, "_get_result", AsyncMock(return_value=solved)) as get_result:
            result = await solver.solve(CaptchaType.RECAPTCHA_V2, "key", "https://example.com")

        assert result.solution == "token-123"
        get_result.assert_awaited_once_with("99", CaptchaType.RECAPTCHA_V2)

    @pytest.mark.asyncio
    async def test_submit_refused_by_service(self):
        """A submit answer with status 0 fails the solve with the service's code."""
        solver = TwoCaptchaSolver(api_key="test-key", poll_interval=0)

        with patch.object(solver, "_call", AsyncMock(return_value={"status": 0, "request": "ERROR_ZERO_BALANCE"})):
            result = await solver.solve(CaptchaType.HCAPTCHA, "key", "https://example.com")

        assert result.status == SolverStatus.FAILED
        assert "ERROR_ZERO_BALANCE" in result.error

    @pytest.mark.asyncio
    async def test_submit_then_poll_through_api_calls(self):
        """Submit goes to in.php, polling to res.php with the returned task id."""
        solver = TwoCaptchaSolver(api_key="test-key", poll_interval=0)
        replies = [
            {"status": 1, "request": "555"},
            {"status": 0, "request": "CAPCHA_NOT_READY"},
            {"status": 1, "request": "token-abc"},
        ]

        with patch.object(solver, "_call", AsyncMock(side_effect=replies)) as call:
            result = await solver.solve(CaptchaType.TURNSTILE, "0x4AAA", "https://example.com")

        assert result.solution == "token-abc"
        assert result.cost == TwoCaptchaSolver.COST_PER_SOLVE
        assert [c.args[:2] for c in call.await_args_list] == [
            ("POST", "in.php"),
            ("GET", "res.php"),
            ("GET", "res.php"),
        ]
        assert call.await_args_list[1].kwargs["params"]["id"] == "555"
        assert solver.get_stats()["total_cost_usd"] == TwoCaptchaSolver.COST_PER_SOLVE


class TestGetSolver:
    """Tests for get_solver factory function."""

    def test_get_2captcha_solver(self):
        """Test getting 2Captcha solver."""
        solver = get_solver("2captcha", api_key="test-key")

        assert isinstance(solver, TwoCaptchaSolver)
        assert solver.api_key == "test-key"

    def test_get_unknown_solver_raises(self):
        """Test that unknown solver raises ValueError."""
        with pytest.raises(ValueError, match="Unknown solver"):
            get_solver("unknown_service")

    def test_case_insensitive(self):
        """Test that service name is case insensitive."""
        solver = get_solver("2CAPTCHA", api_key="test")
        assert isinstance(solver, TwoCaptchaSolver)
