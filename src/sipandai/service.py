"""Workflow service: facade over the approval engine and resilience layer.

Each workflow action runs the same pipeline:
1. load the request through the channel (retried with backoff)
2. ask the engine whether the actor may act, and where the request goes
3. apply the new status optimistically and commit it (retried)
4. on success append an audit event; on terminal failure the request
   is rolled back and a rollback event is recorded

All operations return a ServiceResult. Denials never raise out of
perform(); authorize() is the raising variant for callers that want
exceptions.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sipandai.errors import AuthorizationDenied, InvalidTransition, TransientRemoteFailure
from sipandai.logging_config import get_logger
from sipandai.models.request import RequestCategory, RequestStatus, ServiceRequest
from sipandai.models.role import Session
from sipandai.persistence.channel import RequestChannel
from sipandai.persistence.event_log import EventKind, EventLog, EventRecord
from sipandai.policy.resolver import PolicyResolver, RetryPolicy
from sipandai.resilience.errors import is_retryable_error, normalize_channel_result
from sipandai.resilience.optimistic import OptimisticUpdater
from sipandai.resilience.retry import RetryingExecutor, SleepFn
from sipandai.workflow.engine import (
    ApprovalWorkflowEngine,
    TransitionDecision,
    WorkflowAction,
)

logger = get_logger(__name__)

ACTION_EVENT_KINDS: dict[WorkflowAction, EventKind] = {
    WorkflowAction.SUBMIT: EventKind.REQUEST_SUBMITTED,
    WorkflowAction.START_REVIEW: EventKind.REQUEST_REVIEW_STARTED,
    WorkflowAction.APPROVE: EventKind.REQUEST_APPROVED,
    WorkflowAction.RETURN: EventKind.REQUEST_RETURNED,
    WorkflowAction.REJECT: EventKind.REQUEST_REJECTED,
    WorkflowAction.RESUBMIT: EventKind.REQUEST_RESUBMITTED,
}


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class WorkflowService:
    """Drives requests through the approval workflow.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = WorkflowService.from_resolver(resolver, channel)

        result = await service.create_request(session, RequestCategory.LEAVE, {...})
        request_id = result.data["request"]["request_id"]
        await service.submit(request_id, session)
        await service.approve(request_id, unit_admin_session)
    """

    def __init__(
        self,
        engine: ApprovalWorkflowEngine,
        channel: RequestChannel,
        retry_policy: Optional[RetryPolicy] = None,
        event_log: Optional[EventLog] = None,
        sleep: SleepFn = asyncio.sleep,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._engine = engine
        self._channel = channel
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=3, base_delay_seconds=1.0, max_delay_seconds=None,
        )
        self._event_log = event_log
        self._sleep = sleep
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)

    @classmethod
    def from_resolver(
        cls,
        resolver: PolicyResolver,
        channel: RequestChannel,
        event_log: Optional[EventLog] = None,
        **kwargs: Any,
    ) -> WorkflowService:
        engine = ApprovalWorkflowEngine(
            resolver.unit_partition(), strict_roles=resolver.strict_roles(),
        )
        return cls(
            engine, channel,
            retry_policy=resolver.retry_policy(),
            event_log=event_log,
            **kwargs,
        )

    @property
    def engine(self) -> ApprovalWorkflowEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_request(
        self,
        session: Optional[Session],
        category: RequestCategory,
        payload: Optional[dict[str, Any]] = None,
    ) -> ServiceResult:
        """Create a draft request owned by the session's unit."""
        if session is None:
            return ServiceResult(success=False, errors=["No authenticated session"])

        now = datetime.now(timezone.utc)
        request = ServiceRequest(
            request_id=self._new_id(),
            category=category,
            unit_id=session.unit_id,
            status=RequestStatus.DRAFT,
            requester_id=session.user_id,
            payload=dict(payload or {}),
            created_utc=now,
            updated_utc=now,
        )
        result = await self._executor().execute(
            lambda: self._channel.save_request(request),
        )
        if not result.success:
            return ServiceResult(
                success=False,
                errors=[f"Could not create request: {result.error}"],
                data={"attempts": result.attempts},
            )

        saved: ServiceRequest = result.value
        self._record(EventKind.REQUEST_CREATED, session, {
            "request_id": saved.request_id,
            "category": saved.category.value,
            "unit_id": saved.unit_id,
        })
        return ServiceResult(success=True, data={"request": saved.to_dict()})

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def authorize(
        self,
        request: ServiceRequest,
        action: WorkflowAction,
        session: Optional[Session],
    ) -> TransitionDecision:
        """Return the allowed decision, or raise on denial."""
        decision = self._engine.evaluate_action(request, action, session)
        if decision.allowed:
            return decision
        message = "; ".join(decision.errors)
        if decision.status_conflict:
            raise InvalidTransition(message)
        raise AuthorizationDenied(message)

    async def perform(
        self,
        request_id: str,
        action: WorkflowAction,
        session: Optional[Session],
    ) -> ServiceResult:
        """Run one workflow action end to end."""
        loaded = await self._executor().execute(
            lambda: self._channel.load_request(request_id),
        )
        if not loaded.success:
            return ServiceResult(
                success=False,
                errors=[f"Could not load request {request_id}: {loaded.error}"],
                data={"attempts": loaded.attempts},
            )
        request: ServiceRequest = loaded.value

        try:
            decision = self.authorize(request, action, session)
        except (AuthorizationDenied, InvalidTransition) as exc:
            logger.info(
                "workflow_action_denied",
                request_id=request_id,
                action=action.value,
                reason=str(exc),
            )
            return ServiceResult(
                success=False,
                errors=[str(exc)],
                data={"denial": type(exc).__name__},
            )

        executor = self._executor()

        async def commit(candidate: ServiceRequest) -> ServiceRequest:
            result = await executor.execute(
                lambda: self._channel.save_request(candidate),
            )
            if not result.success:
                raise TransientRemoteFailure(
                    f"Could not save request {request_id}: {result.error}",
                    attempts=result.attempts,
                    cause=result.error,
                )
            return result.value

        updater: OptimisticUpdater[ServiceRequest] = OptimisticUpdater(request, commit)
        outcome = await updater.update(request.with_status(decision.to_status))

        transition = {
            "request_id": request_id,
            "action": action.value,
            "from_status": decision.from_status.value,
            "to_status": decision.to_status.value,
        }
        if not outcome.success:
            attempts = getattr(outcome.error, "attempts", executor.state.attempts)
            self._record(EventKind.TRANSITION_ROLLED_BACK, session, {
                **transition, "attempts": attempts, "error": str(outcome.error),
            })
            return ServiceResult(
                success=False,
                errors=[str(outcome.error)],
                data={
                    "attempts": attempts,
                    "request": updater.state.to_dict(),
                },
            )

        self._record(ACTION_EVENT_KINDS[action], session, transition)
        logger.info("workflow_transition", **transition)
        return ServiceResult(success=True, data={"request": updater.state.to_dict()})

    async def submit(self, request_id: str, session: Optional[Session]) -> ServiceResult:
        return await self.perform(request_id, WorkflowAction.SUBMIT, session)

    async def start_review(self, request_id: str, session: Optional[Session]) -> ServiceResult:
        return await self.perform(request_id, WorkflowAction.START_REVIEW, session)

    async def approve(self, request_id: str, session: Optional[Session]) -> ServiceResult:
        return await self.perform(request_id, WorkflowAction.APPROVE, session)

    async def return_request(self, request_id: str, session: Optional[Session]) -> ServiceResult:
        return await self.perform(request_id, WorkflowAction.RETURN, session)

    async def reject(self, request_id: str, session: Optional[Session]) -> ServiceResult:
        return await self.perform(request_id, WorkflowAction.REJECT, session)

    async def resubmit(self, request_id: str, session: Optional[Session]) -> ServiceResult:
        return await self.perform(request_id, WorkflowAction.RESUBMIT, session)

    # ------------------------------------------------------------------
    # Certificates
    # ------------------------------------------------------------------

    def can_generate_certificate(
        self,
        request: ServiceRequest,
        session: Optional[Session],
    ) -> bool:
        if session is None:
            return False
        return self._engine.can_generate_certificate(
            request.unit_id, request.status, session.role, session.unit_id,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _executor(self) -> RetryingExecutor:
        # One executor per remote call: executors do not allow overlap.
        # Channel calls may answer with a (value, error) pair; only
        # network-class failures are retried.
        return RetryingExecutor.from_policy(
            self._retry_policy,
            sleep=self._sleep,
            retry_if=is_retryable_error,
            normalize=normalize_channel_result,
        )

    def _record(
        self,
        kind: EventKind,
        session: Optional[Session],
        payload: dict[str, Any],
    ) -> None:
        if self._event_log is None:
            return
        actor = session.user_id if session is not None else ""
        self._event_log.append(EventRecord.create(
            event_id=self._new_id(),
            event_kind=kind,
            actor_id=actor,
            payload=payload,
        ))
