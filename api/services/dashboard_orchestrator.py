"""State machine that turns model output into an accepted dashboard.

One ``run`` owns one :class:`GenerationAttemptContext`. Each model answer is
sanitized, normalized and validated; a rejection is classified and decides
whether the next call repairs the answer, regenerates from scratch, or gives
up and serves the deterministic fallback. Backend failures and timeouts are
raised to the caller untouched and never consume the call budget.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from ..schemas.dashboard import DashboardPayload, Profile, SamplingParameters, SessionSnapshot
from .dashboard_errors import (
    DashboardGenerationError,
    FallbackExhausted,
    SanitizationFailure,
    ValidationFailure,
)
from .dashboard_prompt import (
    PromptContext,
    build_dashboard_prompt,
    build_regenerate_prompt,
    build_repair_prompt,
    build_template,
)
from .generation_sources import BackendSource, DeterministicSource, GenerationSource
from .llm_client import TextGenerationBackend
from .payload_normalizer import normalize
from .payload_validator import validate
from .sampling import build_sampling_params, bump_seed, escalate_for_truncation
from .text_sanitizer import SanitizeReport, describe_json_error_location, preview_text, sanitize
from .zodiac import locale_date_label, zodiac_sign

logger = logging.getLogger(__name__)


DEFAULT_MAX_MODEL_CALLS = int(os.getenv("DASHBOARD_MAX_MODEL_CALLS", "3"))
DEFAULT_BACKEND_TIMEOUT_SECONDS = float(os.getenv("DASHBOARD_BACKEND_TIMEOUT_SECONDS", "300"))


class GenerationState(str, Enum):
    BUILD_PROMPT = "build_prompt"
    INVOKE = "invoke"
    EVALUATE = "evaluate"
    REPAIR = "repair"
    REGENERATE = "regenerate"
    FALLBACK = "fallback"
    ACCEPT = "accept"


TRANSITIONS: Dict[GenerationState, FrozenSet[GenerationState]] = {
    GenerationState.BUILD_PROMPT: frozenset({GenerationState.INVOKE}),
    GenerationState.INVOKE: frozenset({GenerationState.EVALUATE}),
    GenerationState.EVALUATE: frozenset(
        {
            GenerationState.ACCEPT,
            GenerationState.REPAIR,
            GenerationState.REGENERATE,
            GenerationState.FALLBACK,
        }
    ),
    GenerationState.REPAIR: frozenset({GenerationState.BUILD_PROMPT}),
    GenerationState.REGENERATE: frozenset({GenerationState.BUILD_PROMPT}),
    GenerationState.FALLBACK: frozenset({GenerationState.ACCEPT}),
    GenerationState.ACCEPT: frozenset(),
}


class FailureClassification(str, Enum):
    TRUNCATION = "truncation"
    SYNTAX_LIKE = "syntax_like"
    OTHER = "other"


class PromptMode(str, Enum):
    INITIAL = "initial"
    REPAIR = "repair"
    REGENERATE = "regenerate"


@dataclass
class CandidateEvaluation:
    candidate: str
    report: SanitizeReport
    payload: Optional[DashboardPayload] = None
    classification: Optional[FailureClassification] = None
    field_path: Optional[str] = None
    reason: str = ""
    error_location: Optional[Dict[str, Any]] = None

    @property
    def accepted(self) -> bool:
        return self.payload is not None


@dataclass
class GenerationAttemptContext:
    profile: Profile
    date_iso: str
    locale_date_label: str
    generated_at: datetime
    sign: str
    sampling: SamplingParameters
    base_sampling: SamplingParameters
    prompt: str = ""
    prompt_mode: PromptMode = PromptMode.INITIAL
    template_json: str = ""
    raw_output: str = ""
    calls_made: int = 0
    last_failure: Optional[str] = None
    classification: Optional[FailureClassification] = None
    attempts: List[Dict[str, Any]] = field(default_factory=list)
    payload: Optional[DashboardPayload] = None

    def prompt_context(self) -> PromptContext:
        return PromptContext(
            name=self.profile.name,
            birthdate=self.profile.birthdate,
            sign=self.sign,
            date_iso=self.date_iso,
            locale_date_label=self.locale_date_label,
            generated_at_iso=self.generated_at.isoformat(),
            mood=self.profile.mood,
            personality=self.profile.personality,
        )


def _parse_candidate(result_candidate: str, report: SanitizeReport) -> Any:
    if not report.object_found:
        raise SanitizationFailure("no JSON object found in model output")
    return json.loads(result_candidate)


def _validated(parsed: Any) -> DashboardPayload:
    outcome = validate(normalize(parsed))
    if outcome.violation is not None:
        raise ValidationFailure(outcome.violation.field_path, outcome.violation.reason)
    return outcome.payload


def evaluate_candidate(raw: str) -> CandidateEvaluation:
    """Sanitize, parse, normalize and validate one raw answer; never raises."""

    result = sanitize(raw)
    report = result.report
    evaluation = CandidateEvaluation(candidate=result.candidate, report=report)
    try:
        parsed = _parse_candidate(result.candidate, report)
        evaluation.payload = _validated(parsed)
    except SanitizationFailure as exc:
        evaluation.classification = FailureClassification.OTHER
        evaluation.reason = str(exc)
    except json.JSONDecodeError as exc:
        at_end = exc.pos >= len(exc.doc.rstrip())
        if at_end or "Unterminated" in exc.msg or report.missing_brace_added:
            evaluation.classification = FailureClassification.TRUNCATION
        else:
            evaluation.classification = FailureClassification.SYNTAX_LIKE
        evaluation.reason = exc.msg
        evaluation.error_location = describe_json_error_location(result.candidate, exc)
    except (ValueError, RecursionError) as exc:
        # Digit limits and nesting depth stop the decoder outside JSONDecodeError.
        evaluation.classification = FailureClassification.OTHER
        evaluation.reason = f"{type(exc).__name__}: {exc}"
    except ValidationFailure as exc:
        evaluation.classification = (
            FailureClassification.TRUNCATION if report.missing_brace_added else FailureClassification.OTHER
        )
        evaluation.field_path = exc.field_path
        evaluation.reason = exc.reason
    return evaluation


def decide_next_state(
    classification: Optional[FailureClassification], calls_made: int, max_calls: int
) -> GenerationState:
    if classification is None:
        return GenerationState.ACCEPT
    if calls_made >= max_calls:
        return GenerationState.FALLBACK
    if classification is FailureClassification.SYNTAX_LIKE:
        return GenerationState.REPAIR
    return GenerationState.REGENERATE


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DashboardOrchestrator:
    def __init__(
        self,
        backend: TextGenerationBackend,
        max_calls: int = DEFAULT_MAX_MODEL_CALLS,
        timeout_seconds: Optional[float] = DEFAULT_BACKEND_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        self.max_calls = max_calls
        self.clock = clock
        self.backend_source: GenerationSource = BackendSource(backend, timeout_seconds)
        self.fallback_source: GenerationSource = DeterministicSource()

    def new_context(
        self, profile: Profile, date_iso: str, session: Optional[SessionSnapshot] = None
    ) -> GenerationAttemptContext:
        sampling = build_sampling_params(profile, date_iso, session)
        return GenerationAttemptContext(
            profile=profile,
            date_iso=date_iso,
            locale_date_label=locale_date_label(date_iso),
            generated_at=self.clock(),
            sign=zodiac_sign(profile.birthdate),
            sampling=sampling,
            base_sampling=sampling,
        )

    @staticmethod
    def _transition(current: GenerationState, target: GenerationState) -> GenerationState:
        if target not in TRANSITIONS[current]:
            raise DashboardGenerationError(f"illegal transition {current.value} -> {target.value}")
        return target

    def _build_prompt(self, context: GenerationAttemptContext) -> None:
        prompt_context = context.prompt_context()
        if not context.template_json:
            context.template_json = build_template(prompt_context)
        if context.prompt_mode is PromptMode.REPAIR:
            context.prompt = build_repair_prompt(prompt_context, context.template_json, context.raw_output)
        elif context.prompt_mode is PromptMode.REGENERATE:
            context.prompt = build_regenerate_prompt(prompt_context, context.template_json)
        else:
            context.prompt = build_dashboard_prompt(prompt_context, context.template_json)
        logger.info(
            "dashboard_prompt_built",
            extra={
                "prompt_mode": context.prompt_mode.value,
                "prompt_chars": len(context.prompt),
                "date_iso": context.date_iso,
            },
        )

    def _record(self, context: GenerationAttemptContext, evaluation: CandidateEvaluation, source: str) -> None:
        context.attempts.append(
            {
                "source": source,
                "call": context.calls_made,
                "prompt_mode": context.prompt_mode.value,
                "accepted": evaluation.accepted,
                "classification": evaluation.classification.value if evaluation.classification else None,
                "field_path": evaluation.field_path,
                "reason": evaluation.reason,
                "sanitizer": evaluation.report.fired(),
            }
        )
        if not evaluation.accepted:
            context.classification = evaluation.classification
            context.last_failure = (
                f"{evaluation.field_path}: {evaluation.reason}" if evaluation.field_path else evaluation.reason
            )

    def _prepare_retry(self, context: GenerationAttemptContext, state: GenerationState) -> None:
        if state is GenerationState.REPAIR:
            context.prompt_mode = PromptMode.REPAIR
            return
        context.prompt_mode = PromptMode.REGENERATE
        if context.classification is FailureClassification.TRUNCATION:
            context.sampling = escalate_for_truncation(context.base_sampling, context.calls_made)
        else:
            context.sampling = bump_seed(context.base_sampling, context.calls_made)

    async def _invoke(self, context: GenerationAttemptContext) -> None:
        logger.info(
            "dashboard_backend_invoke",
            extra={
                "call": context.calls_made + 1,
                "max_calls": self.max_calls,
                "prompt_mode": context.prompt_mode.value,
                "max_tokens": context.sampling.max_tokens,
                "temperature": context.sampling.temperature,
                "seed": context.sampling.seed,
            },
        )
        raw = await self.backend_source.produce(context)
        context.calls_made += 1
        context.raw_output = raw

    async def _fallback(self, context: GenerationAttemptContext) -> None:
        raw = await self.fallback_source.produce(context)
        evaluation = evaluate_candidate(raw)
        self._record(context, evaluation, "fallback")
        if not evaluation.accepted:
            logger.error(
                "dashboard_fallback_rejected",
                extra={
                    "field_path": evaluation.field_path,
                    "reason": evaluation.reason,
                    "date_iso": context.date_iso,
                },
            )
            raise FallbackExhausted(evaluation.field_path or "(root)", evaluation.reason)
        context.payload = evaluation.payload
        logger.warning(
            "dashboard_fallback_used",
            extra={
                "calls_made": context.calls_made,
                "last_failure": context.last_failure,
                "classification": context.classification.value if context.classification else None,
            },
        )

    async def run(
        self, profile: Profile, date_iso: str, session: Optional[SessionSnapshot] = None
    ) -> DashboardPayload:
        context = self.new_context(profile, date_iso, session)
        state = GenerationState.BUILD_PROMPT

        while state is not GenerationState.ACCEPT:
            if state is GenerationState.BUILD_PROMPT:
                self._build_prompt(context)
                state = self._transition(state, GenerationState.INVOKE)
            elif state is GenerationState.INVOKE:
                await self._invoke(context)
                state = self._transition(state, GenerationState.EVALUATE)
            elif state is GenerationState.EVALUATE:
                evaluation = evaluate_candidate(context.raw_output)
                self._record(context, evaluation, "backend")
                if evaluation.accepted:
                    context.payload = evaluation.payload
                    context.classification = None
                else:
                    logger.info(
                        "dashboard_candidate_rejected",
                        extra={
                            "call": context.calls_made,
                            "classification": evaluation.classification.value,
                            "field_path": evaluation.field_path,
                            "reason": evaluation.reason,
                            "sanitizer": evaluation.report.fired(),
                            "preview": preview_text(context.raw_output),
                            "error_location": evaluation.error_location,
                        },
                    )
                next_state = decide_next_state(
                    None if evaluation.accepted else evaluation.classification,
                    context.calls_made,
                    self.max_calls,
                )
                state = self._transition(state, next_state)
            elif state in (GenerationState.REPAIR, GenerationState.REGENERATE):
                self._prepare_retry(context, state)
                state = self._transition(state, GenerationState.BUILD_PROMPT)
            elif state is GenerationState.FALLBACK:
                await self._fallback(context)
                state = self._transition(state, GenerationState.ACCEPT)

        logger.info(
            "dashboard_payload_accepted",
            extra={
                "calls_made": context.calls_made,
                "attempts": len(context.attempts),
                "source": context.attempts[-1]["source"] if context.attempts else None,
            },
        )
        return context.payload
