"""Semantic analyzer backed by the Anthropic Messages API."""

import logging
import os
from typing import Optional

import anthropic

from ..exceptions import CollaboratorFailure
from .semantic_analysis import AnalysisRequest, AnalysisResponse, SemanticAnalyzer, parse_response

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

SYSTEM_PROMPT = """You are a smart contract security analyst. You analyze differences between two versions of a Solidity contract and provide:
1. A clear summary of what changed and why it matters
2. Breaking changes that affect callers/integrators
3. Security impact analysis
4. A migration guide for developers who need to update their integrations

Respond in valid JSON with this exact structure:
{
  "summary": "Clear 2-3 sentence summary of the changes",
  "breakingChanges": [
    { "name": "functionOrElement", "category": "function|event|variable|modifier", "reason": "Why this breaks compatibility", "before": "old signature", "after": "new signature" }
  ],
  "securityImpacts": [
    { "change": "What changed", "impact": "Why it matters for security", "severity": "critical|high|medium|low|info", "recommendation": "What to do about it" }
  ],
  "migrationGuide": "Step-by-step markdown guide for migrating from version A to B",
  "riskLevel": "critical|high|medium|low|none"
}"""


def build_prompt(request: AnalysisRequest) -> str:
    """User prompt describing both versions and the rule-based findings."""
    change_lines = []
    for change in request.changes:
        text = f"[{change.type.value.upper()}] {change.category.value}: {change.name}"
        if change.before:
            text += f"\n  Before: {change.before}"
        if change.after:
            text += f"\n  After:  {change.after}"
        text += f"\n  Impact: {change.impact.value}"
        if change.explanation:
            text += f"\n  Note: {change.explanation}"
        change_lines.append(text)

    if request.security_impacts:
        security_text = "\n".join(
            f"- [{s.severity.value.upper()}] {s.change}: {s.impact}" for s in request.security_impacts
        )
    else:
        security_text = "No rule-based security impacts detected."

    a, b = request.contract_a, request.contract_b
    return f"""Compare these two contract versions:

CONTRACT A: "{a.name}" at {a.address}
```solidity
{request.source_a}
```

CONTRACT B: "{b.name}" at {b.address}
```solidity
{request.source_b}
```

DETECTED CHANGES ({len(request.changes)} total):
{chr(10).join(change_lines) if change_lines else "None"}

PRELIMINARY SECURITY ANALYSIS:
{security_text}

Analyze these changes. Focus on:
1. What is the overall intent of these changes?
2. Are there breaking changes that the rule-based system missed?
3. Are there security implications the rule-based system missed?
4. What should a developer do to migrate from A to B?

Respond with valid JSON only."""


class AnthropicSemanticAnalyzer(SemanticAnalyzer):
    """Semantic analysis through Claude.

    Credentials come from ``api_key`` or the ``ANTHROPIC_API_KEY`` environment
    variable and are only checked when ``analyze`` is called.
    """

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_MODEL, max_tokens: int = 8192,
                 temperature: float = 0.2, timeout: float = 30.0, client: Optional[anthropic.Anthropic] = None):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            if not self.api_key:
                raise CollaboratorFailure("No Anthropic API key: pass api_key or set ANTHROPIC_API_KEY")
            # The engine owns the retry policy (none), so the SDK must not retry either
            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        client = self.client
        logger.info(f"Requesting semantic analysis from {self.model}")

        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_prompt(request)}],
            )
        except anthropic.APIError as e:
            raise CollaboratorFailure(f"Anthropic request failed: {e}") from e

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        if not text.strip():
            raise CollaboratorFailure("Anthropic response contained no text")

        return parse_response(text)
