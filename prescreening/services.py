"""
prescreening/services.py

AI pre-screening of candidates (Anthropic Messages API).

Responsibilities:
  - run                 : analyse a candidate's profile + resume, persist the
                          PreScreen, record it in the recruiter's interaction
                          ledger and announce completion on the bus
  - pre_screens_for     : the recruiter's pre-screens, most recent first

Completion is published with transaction.on_commit, so subscribers reloading
from the database always see the new ledger row.
"""

import json
import logging

import anthropic
import json_repair
from django.conf import settings
from django.db import DatabaseError, transaction

from hireledger.bus import CompletionBus, CompletionSignal
from hireledger.constants import PRE_SCREENING_COMPLETED
from hireledger.text_utils import build_full_name, join_or_default, strip_json_fence
from interactions.errors import AppendError
from interactions.models import CandidateInteraction
from interactions.store import DjangoLedgerStore, LedgerStore, NewInteraction
from prescreening.models import PreScreen

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are an expert HR professional and background verification specialist. "
    "Analyze resumes and profiles to identify potential red flags and generate "
    "relevant pre-screening questions. Respond with a single JSON object only, "
    "no markdown fences and no commentary."
)

USER_PROMPT = """Analyze this candidate's resume and profile for background verification and pre-screening:

CANDIDATE PROFILE:
Name: {name}
Title: {title}
Location: {location}
Experience Years: {experience_years}
Skills: {skills}
Education: {education}

RESUME CONTENT:
{resume}

Please provide:
1. VERIFICATION FLAGS: List any potential red flags, inconsistencies, or areas that need verification (employment gaps, skill mismatches, etc.)
2. SCREENING QUESTIONS: Generate 5-7 relevant pre-screening questions based on their background

Respond in JSON format:
{{
  "flags": [
    {{
      "type": "employment_gap|skill_mismatch|education_verification|experience_inconsistency|other",
      "severity": "low|medium|high",
      "description": "Description of the flag",
      "recommendation": "What action to take"
    }}
  ],
  "questions": [
    {{
      "category": "technical|behavioral|experience|education|availability",
      "question": "The screening question",
      "importance": "low|medium|high",
      "expectedAnswerType": "text|yes_no|multiple_choice"
    }}
  ]
}}"""


class PreScreeningError(Exception):
    """Raised when the analysis cannot be obtained, parsed or saved."""


def pre_screens_for(recruiter) -> list[PreScreen]:
    return list(PreScreen.objects.filter(recruiter=recruiter).order_by("-created_at"))


class PreScreeningService:
    """
    Runs one pre-screening analysis per call.

    Args:
        bus    : CompletionBus that receives PRE_SCREENING_COMPLETED after commit.
        client : Optional anthropic.Anthropic instance (created lazily otherwise).
        store  : LedgerStore the completion interaction is written through.
    """

    def __init__(
        self,
        bus: CompletionBus,
        client: anthropic.Anthropic | None = None,
        store: LedgerStore | None = None,
    ):
        self.bus = bus
        self._client = client
        self.store = store or DjangoLedgerStore()

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            api_key = settings.ANTHROPIC_API_KEY
            if not api_key:
                raise PreScreeningError("ANTHROPIC_API_KEY is not configured.")
            self._client = anthropic.Anthropic(api_key=api_key)
        return self._client

    # ── Public API ─────────────────────────────────────────────────────────────

    def run(self, recruiter, candidate, resume_content: str | None = None) -> PreScreen:
        """
        Analyse `candidate` for `recruiter` and persist the result.

        `resume_content` overrides the text stored on the candidate.

        Raises:
            PreScreeningError on API failure, unparseable output or a failed save.
        """
        if resume_content is None:
            resume_content = candidate.resume_content or ""

        logger.info(
            "Pre-screening candidate=%s for recruiter=%s (resume %d chars)",
            candidate.pk, recruiter.pk, len(resume_content),
        )

        raw = self._send_message(
            model=settings.ANTHROPIC_MODEL,
            system=SYSTEM_PROMPT,
            user=_build_user_prompt(candidate, resume_content),
        )
        analysis = _parse_claude_json(raw)

        if "flags" not in analysis and "questions" not in analysis:
            raise PreScreeningError(
                f"Claude response has neither 'flags' nor 'questions'. Raw: {raw[:300]}"
            )
        flags = _as_list(analysis.get("flags"))
        questions = _as_list(analysis.get("questions"))

        try:
            with transaction.atomic():
                pre_screen = PreScreen.objects.create(
                    candidate=candidate,
                    recruiter=recruiter,
                    questions=questions,
                    flags=flags,
                    status=PreScreen.Status.COMPLETED,
                )
                self.store.insert(
                    NewInteraction(
                        recruiter_id=str(recruiter.pk),
                        candidate_id=str(candidate.pk),
                        kind=CandidateInteraction.Kind.PRE_SCREENING_COMPLETED,
                        details={
                            "pre_screen_id": str(pre_screen.pk),
                            "flag_count": len(flags),
                            "question_count": len(questions),
                        },
                    )
                )
                signal = CompletionSignal(
                    candidate_id=str(candidate.pk),
                    recruiter_id=str(recruiter.pk),
                    job_id=str(pre_screen.pk),
                )
                transaction.on_commit(lambda: self.bus.publish(PRE_SCREENING_COMPLETED, signal))
        except (AppendError, DatabaseError) as exc:
            raise PreScreeningError(f"Failed to save pre-screening results: {exc}") from exc

        logger.info(
            "Pre-screen saved: pre_screen=%s candidate=%s flags=%d questions=%d",
            pre_screen.pk, candidate.pk, len(flags), len(questions),
        )
        return pre_screen

    # ── Internal ───────────────────────────────────────────────────────────────

    def _send_message(self, model: str, system: str, user: str) -> str:
        """
        Send a single-turn message and return the text of the first content block.

        Raises:
            PreScreeningError on any Anthropic API error or a truncated response.
        """
        try:
            message = self.client.messages.create(
                model=model,
                max_tokens=settings.ANTHROPIC_MAX_TOKENS,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
        except anthropic.APIError as exc:
            raise PreScreeningError(f"Anthropic API error: {exc}") from exc

        if not message.content:
            raise PreScreeningError("Anthropic returned an empty response.")

        stop_reason = getattr(message, "stop_reason", None)
        logger.debug(
            "Claude usage: input_tokens=%s output_tokens=%s stop_reason=%s",
            getattr(message.usage, "input_tokens", "?"),
            getattr(message.usage, "output_tokens", "?"),
            stop_reason,
        )
        if stop_reason == "max_tokens":
            raise PreScreeningError(
                f"Claude's response was truncated at max_tokens "
                f"({settings.ANTHROPIC_MAX_TOKENS}). Increase ANTHROPIC_MAX_TOKENS."
            )

        return message.content[0].text


# ── Helpers ────────────────────────────────────────────────────────────────────

def _build_user_prompt(candidate, resume_content: str) -> str:
    return USER_PROMPT.format(
        name=build_full_name(candidate.first_name, candidate.last_name),
        title=candidate.title or "Not specified",
        location=candidate.location or "Not specified",
        experience_years=(
            "Not specified" if candidate.experience_years is None else candidate.experience_years
        ),
        skills=join_or_default(candidate.skills),
        education=candidate.education or "Not specified",
        resume=resume_content or "No resume content available",
    )


def _parse_claude_json(raw: str) -> dict:
    """
    Parse a JSON object from Claude's response text.

    Strict parse after stripping code fences first; json_repair second.

    Raises:
        PreScreeningError if the text cannot be parsed even after repair.
    """
    text = strip_json_fence(raw)

    try:
        result = json.loads(text)
    except json.JSONDecodeError as first_exc:
        logger.debug(
            "Strict JSON parse failed (%s), attempting json_repair. Raw[:200]=%r",
            first_exc, raw[:200],
        )
        try:
            repaired = json_repair.repair_json(text, return_objects=False)
            result = json.loads(repaired)
            logger.info("json_repair fixed Claude's malformed pre-screening JSON.")
        except Exception as second_exc:
            raise PreScreeningError(
                f"Failed to parse Claude JSON response even after repair: "
                f"{second_exc}. Original error: {first_exc}. Raw: {raw[:300]}"
            ) from second_exc

    if not isinstance(result, dict):
        raise PreScreeningError(
            f"Expected JSON object from Claude, got {type(result).__name__}."
        )
    return result


def _as_list(value) -> list:
    return value if isinstance(value, list) else []
