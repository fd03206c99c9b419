"""
Tool Belt — dispatches the agent's tool calls to registered executors.

Behavioral Contract:
- Tools are addressed by the closed ToolName enum; there is no string dispatch
- Every call is timed and returns a ToolResult; executor exceptions become
  success=False with the message preserved verbatim
- Deciding whether a failure is fatal is the caller's job
"""

import time
from typing import Any, Callable, Dict, Optional

from adgov_kernel.benchmarks.provider import BenchmarkProvider
from adgov_kernel.governance.guardrails import GuardrailEngine
from adgov_kernel.health.validator import HealthValidator
from adgov_kernel.metrics.gateway import MetricsGateway
from adgov_kernel.models.agent import ToolName, ToolResult


class ToolBelt:
    def __init__(
        self,
        metrics_gateway: MetricsGateway,
        health_validator: HealthValidator,
        benchmark_provider: BenchmarkProvider,
        guardrail_engine: GuardrailEngine,
    ):
        self.metrics_gateway = metrics_gateway
        self.health_validator = health_validator
        self.benchmark_provider = benchmark_provider
        self.guardrail_engine = guardrail_engine
        self._executors: Dict[ToolName, Callable[..., Any]] = {}
        self._register_default_executors()

    def _register_default_executors(self) -> None:
        self._executors[ToolName.FETCH_METRICS] = self.metrics_gateway.fetch_metrics
        self._executors[ToolName.VALIDATE_DATA_HEALTH] = (
            self.health_validator.validate_data_health
        )
        self._executors[ToolName.GET_HISTORICAL_BENCHMARKS] = (
            self.benchmark_provider.get_historical_benchmarks
        )
        self._executors[ToolName.CHECK_GUARDRAILS] = self.guardrail_engine.check

    def register_executor(self, tool: ToolName, executor: Callable[..., Any]) -> None:
        """Register or replace the executor behind a tool."""
        self._executors[tool] = executor

    def has_executor(self, tool: ToolName) -> bool:
        return tool in self._executors

    def call(
        self,
        tool: ToolName,
        params: Optional[Dict[str, Any]] = None,
        executor: Optional[Callable[..., Any]] = None,
    ) -> ToolResult:
        """Run a tool. An explicit executor takes precedence over the registered one."""
        executor = executor or self._executors.get(tool)
        if executor is None:
            return ToolResult(
                tool=tool,
                success=False,
                error=f"No executor registered for tool: {tool.value}",
            )

        start = time.monotonic()
        try:
            data = executor(**(params or {}))
            elapsed = time.monotonic() - start
            return ToolResult(
                tool=tool, success=True, data=data, duration_ms=round(elapsed * 1000, 3)
            )
        except Exception as e:
            elapsed = time.monotonic() - start
            return ToolResult(
                tool=tool, success=False, error=str(e), duration_ms=round(elapsed * 1000, 3)
            )
