"""
Dispute agent: evidence-request questions for both parties.

Authority A2 (proposal-only). Questions are a suggestion to the dispute
workflow; nothing here resolves a dispute.
"""

import structlog

from decisiongate.agents.base import BaseAgent
from decisiongate.router.router import CallOptions, ResponseFormat
from decisiongate.router.routes import Route
from decisiongate.schemas.disputes import DisputeContext, EvidenceRequest

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """You are the Dispute Evidence Request Generator.
Generate specific, targeted questions for both the poster and worker in a dispute.
Questions should help gather evidence to resolve the dispute fairly.

Return JSON with EXACTLY these fields:
- poster_questions: string[] (3-5 specific questions for the poster)
- worker_questions: string[] (3-5 specific questions for the worker)

Questions should be:
- Specific to the dispute reason and task type
- Non-leading (don't assume fault)
- Actionable (ask for concrete evidence: photos, timestamps, messages)"""


class DisputeAgent(BaseAgent):
    agent_type = "dispute"

    async def generate_evidence_request(self, ctx: DisputeContext) -> EvidenceRequest:
        answer = await self._ask(
            "evidence_request",
            CallOptions(
                prompt=_prompt(ctx),
                route=Route.FAST,
                system_prompt=SYSTEM_PROMPT,
                temperature=0.3,
                max_tokens=1024,
                timeout_ms=10_000,
                response_format=ResponseFormat.JSON,
            ),
            EvidenceRequest.model_validate,
        )
        request = answer.value if answer is not None else self.fallback.evidence_questions(ctx)

        self._record(
            payload={"type": "evidence_request", **request.model_dump(mode="json", exclude={"confidence"})},
            confidence=request.confidence,
            reasoning=(
                f"Generated evidence request: {len(request.poster_questions)} poster questions, "
                f"{len(request.worker_questions)} worker questions"
            ),
            subject={"task_id": ctx.task_id, "dispute_id": ctx.dispute_id},
        )
        logger.info(
            "evidence_request_generated",
            dispute_id=ctx.dispute_id,
            source="ai" if answer is not None else "fallback",
            poster_questions=len(request.poster_questions),
            worker_questions=len(request.worker_questions),
        )
        return request


def _prompt(ctx: DisputeContext) -> str:
    initiator = "POSTER" if ctx.initiated_by == ctx.poster_id else "WORKER"
    return (
        "Generate evidence request questions for this dispute:\n\n"
        f"Dispute reason: {ctx.reason}\n"
        f"Description: {ctx.description or 'none provided'}\n"
        f'Task: "{ctx.task_title}": {ctx.task_description or "no description"}\n'
        f"Task price: ${ctx.amount_cents / 100:.2f}\n"
        f"Initiated by: {initiator}\n"
        f"Evidence already submitted: {len(ctx.evidence)} items"
    )
