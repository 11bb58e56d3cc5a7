"""Remediation executor with safety gates, timeout and verification."""

import asyncio
import time
from collections import deque
from typing import Deque, Iterable, List, Optional, Sequence

import structlog

from hostguard.config import RemediationConfig
from hostguard.errors import ExecutionFailure
from hostguard.models.execution import (
    ActionDescriptor,
    ActionRequest,
    BatchResult,
    ExecutionResult,
    ExecutionStatus,
    VerificationResult,
)
from hostguard.models.outputs import Diagnosis
from hostguard.remediation.actions.base import ActionRegistry
from hostguard.remediation.runner import TIMEOUT_EXIT_CODE
from hostguard.remediation.safety import SafetyValidator


logger = structlog.get_logger()

HISTORY_SIZE = 200


class RemediationExecutor:
    """
    Executes remediation actions with safety controls.

    Per invocation:
    1. Safety decision (dry-run short-circuits here)
    2. Approval gate
    3. Validate
    4. Execute under the configured timeout
    5. Verify
    6. Report

    Nothing raised by an action escapes; it is captured in the result.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        safety: SafetyValidator,
        config: Optional[RemediationConfig] = None,
    ):
        self._registry = registry
        self._safety = safety
        self._config = config or RemediationConfig()
        self._history: Deque[ExecutionResult] = deque(maxlen=HISTORY_SIZE)

    @property
    def safety(self) -> SafetyValidator:
        return self._safety

    async def execute(
        self,
        action_name: str,
        target: str = "",
        args: Sequence[str] = (),
        dry_run: Optional[bool] = None,
    ) -> ExecutionResult:
        """
        Run one named action against one target.

        Args:
            action_name: Registered action name
            target: Optional subject (container, service, PID, log dir)
            args: Extra arguments passed to validate/execute
            dry_run: Overrides the configured dry-run flag

        Returns:
            ExecutionResult; never raises for action failures
        """
        dry_run = self._config.dry_run if dry_run is None else dry_run
        started = time.monotonic()
        result = ExecutionResult(action=action_name, target=target or "", dry_run=dry_run)

        logger.info("Remediation requested", action=action_name, target=target or None, dry_run=dry_run)

        try:
            decision = await asyncio.to_thread(self._safety.pre_execution_decision, action_name, target)
        except Exception as e:
            logger.error("Safety check failed", action=action_name, error=str(e))
            result.status = ExecutionStatus.ERROR
            result.message = f"safety check failed: {e}"
            return self._finish(result, started)

        result.decision = decision
        result.risk_level = decision.risk_level

        if dry_run:
            result.status = ExecutionStatus.SKIPPED
            result.message = f"dry run: would {'execute' if decision.approved else 'reject'} ({decision.reason})"
            return self._finish(result, started)

        if not decision.approved:
            result.status = ExecutionStatus.REJECTED
            result.message = f"{decision.reason} (risk level: {decision.risk_level.value})"
            logger.info("Remediation rejected", action=action_name, reason=decision.reason)
            return self._finish(result, started)

        action = self._registry.get(action_name)
        if action is None:
            result.status = ExecutionStatus.ERROR
            result.message = f"unknown action: {action_name}"
            return self._finish(result, started)

        try:
            valid, reason = await action.validate(target, args)
        except Exception as e:
            valid, reason = False, f"validate raised: {e}"
        if not valid:
            result.status = ExecutionStatus.VALIDATION_FAILED
            result.message = reason
            logger.warning("Remediation validation failed", action=action_name, reason=reason)
            return self._finish(result, started)

        timeout = self._config.timeout_seconds
        try:
            outcome = await asyncio.wait_for(action.execute(target, args), timeout)
            result.exit_code = outcome.exit_code
            result.output = outcome.output
        except asyncio.TimeoutError:
            result.exit_code = TIMEOUT_EXIT_CODE
            result.output = f"execution timed out after {timeout}s"
            logger.warning("Remediation timed out", action=action_name, timeout=timeout)
        except ExecutionFailure as e:
            result.exit_code = e.exit_code
            result.output = str(e)
            logger.warning("Remediation step failed", action=action_name, error=str(e))
        except Exception as e:
            result.exit_code = 1
            result.output = f"execute raised: {e}"
            logger.error("Remediation execute raised", action=action_name, error=str(e))

        if result.exit_code == 0:
            try:
                verification = await action.verify(target)
            except Exception as e:
                verification = (False, f"verify raised: {e}")
            if verification is None:
                result.verification = VerificationResult.SKIPPED
            else:
                passed, message = verification
                result.verification = VerificationResult.PASSED if passed else VerificationResult.FAILED
                result.verification_message = message

            if result.verification == VerificationResult.FAILED:
                result.status = ExecutionStatus.PARTIAL
                result.message = f"executed but verification failed: {result.verification_message}"
            else:
                result.status = ExecutionStatus.SUCCESS
                result.message = "executed successfully"
        else:
            result.status = ExecutionStatus.FAILED
            result.message = f"execution failed (exit code {result.exit_code})"

        return self._finish(result, started)

    def _finish(self, result: ExecutionResult, started: float) -> ExecutionResult:
        result.duration_seconds = time.monotonic() - started
        self._history.append(result)
        logger.info(
            "Remediation finished",
            action=result.action,
            target=result.target or None,
            status=result.status.value,
            exit_code=result.exit_code,
            verification=result.verification.value,
            duration=round(result.duration_seconds, 3),
        )
        return result

    async def execute_batch(
        self,
        requests: Iterable[ActionRequest],
        dry_run: Optional[bool] = None,
    ) -> BatchResult:
        """Run requests sequentially; one failure never stops the batch."""
        batch = BatchResult()
        for request in requests:
            batch.results.append(await self.execute(request.action, request.target, dry_run=dry_run))
        logger.info("Batch finished", total=batch.total, success=batch.success, failed=batch.failed)
        return batch

    async def auto_remediate(self, diagnosis: Diagnosis, dry_run: Optional[bool] = None) -> BatchResult:
        """Run the diagnosis' low-risk, auto-executable recommendations."""
        requests = diagnosis.auto_actions()
        if not requests:
            logger.info("No auto-executable recommendations")
            return BatchResult()
        return await self.execute_batch(requests, dry_run=dry_run)

    def list_actions(self) -> List[ActionDescriptor]:
        return self._registry.descriptors(self._safety)

    def recent_results(self, limit: int = 50) -> List[ExecutionResult]:
        return list(reversed(self._history))[:limit]
