"""Prompt library for chunked incident analysis.

The system prompt and instruction templates are immutable fragments: they are
identical for every chunk of a run and are what the fragment cache avoids
retransmitting. Only the chunk message changes from one request to the next.
"""

from typing import Optional, Sequence

# ==================== SYSTEM PROMPT ====================

DEFAULT_SYSTEM_PROMPT = """You are an expert analyst specializing in data quality and compliance review of incident records.

**Role:**
- Analyze structured incident data objectively
- Identify patterns, anomalies, and compliance issues
- Provide actionable recommendations
- Use clear, professional language

**Analysis principles:**
1. Severity assessment: HIGH for immediate risks, MEDIUM for process improvements, LOW for informational
2. Context preservation: stay aware of analyses of previous chunks when their summary is provided
3. Compliance focus: flag data quality issues, missing fields, or procedural violations
4. Actionability: every recommendation must be specific and implementable
5. Consistency: apply the same criteria across all chunks

**Output format:**
Return valid JSON with high_priority_issues, medium_priority_issues, recommendations, and summary.
Be concise but specific. Avoid repeating findings already covered by a previous chunk summary.
"""

# ==================== INSTRUCTION TEMPLATES ====================

COMPLIANCE_TEMPLATE = """Analyze the incident records below for compliance and data quality issues.

Focus areas:
1. Missing required fields
2. Inconsistent data formatting
3. Compliance violations (CJIS, SOC2, audit trails)
4. Risk assessment accuracy
5. Timeline completeness

Identify and prioritize issues by severity."""

PATTERNS_TEMPLATE = """Analyze the incidents below to identify patterns, trends, and anomalies.

Pattern detection focus:
1. Recurring incident types or locations
2. Temporal patterns (time-of-day, day-of-week)
3. Resource allocation patterns
4. Response time patterns
5. Anomalies that deviate from established patterns

Provide a summary of detected patterns and any concerning trends."""

SUMMARY_TEMPLATE = """Create a concise executive summary of the incidents below for a district supervisor.

Summary requirements:
1. High-priority incidents only (filter out LOW/MEDIUM)
2. Key statistics (count, types, distribution)
3. Critical actions needed today
4. Resource deployment recommendations
5. Trends affecting next shift planning

Keep to 3-5 key bullet points. Focus on actionable intelligence."""

HISTORY_TEMPLATE = """Provide historical context for dispatchers during active incident response.

Historical context analysis:
1. Similar incidents in the past (pattern recognition)
2. Known hazards or risks at these locations
3. Response patterns from similar incidents
4. Lessons learned from previous occurrences
5. Resource requirements based on history

Focus on actionable information for current dispatch decisions."""

GENERIC_TEMPLATE = "Analyze and provide insights on this chunk of incident data."

INSTRUCTION_TEMPLATES = {
    "compliance": COMPLIANCE_TEMPLATE,
    "patterns": PATTERNS_TEMPLATE,
    "summary": SUMMARY_TEMPLATE,
    "history": HISTORY_TEMPLATE,
}

ANALYSIS_ROTATION = ("compliance", "patterns", "summary", "history")


def get_instruction_template(category: str) -> str:
    """Return the canonical template for ``category``, or the generic one."""
    return INSTRUCTION_TEMPLATES.get(category, GENERIC_TEMPLATE)


def analysis_type_for_chunk(index: int, rotation: Sequence[str] = ANALYSIS_ROTATION) -> str:
    """Rotate through ``rotation`` by zero-based chunk index."""
    if not rotation:
        raise ValueError("Analysis rotation cannot be empty.")
    return rotation[index % len(rotation)]


def build_chunk_message(content: str, previous_summary: Optional[str] = None) -> str:
    """Build the per-chunk (never cached) part of the request."""
    message = f"### Data to analyze\n{content}"
    if previous_summary:
        message += f"\n\n### Previous analysis context\n{previous_summary}"
    return message
