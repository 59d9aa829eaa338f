"""
Text renderings of an AnalysisOutcome for the messaging bots and the console.
"""

from .. import config
from ..models import AnalysisOutcome, Verdict

VERDICT_EMOJI = {
    Verdict.TRUE: "✅",
    Verdict.FALSE: "❌",
    Verdict.MISLEADING: "⚠️",
    Verdict.SATIRE: "🎭",
}
DEFAULT_EMOJI = "❓"

APOLOGY_MESSAGE = "Sorry, I encountered an error while analyzing that."
UNSUPPORTED_MEDIA_MESSAGE = (
    "Sorry, I can only check text, JPEG/PNG/WEBP images, WAV/MP3 audio and MP4 video up to "
    f"{config.MAX_UPLOAD_BYTES // (1024 * 1024)} MB."
)
NO_SOURCES_LINE = "No direct web sources found."


def format_report(outcome: AnalysisOutcome) -> str:
    """Markdown-flavoured bot reply: verdict, confidence, summary, findings and sources."""
    result = outcome.result
    emoji = VERDICT_EMOJI.get(result.verdict, DEFAULT_EMOJI)
    findings = "\n".join(f"• {point}" for point in result.key_points)
    if outcome.sources:
        sources = "\n".join(f"🔗 {source.uri}" for source in outcome.sources)
    else:
        sources = NO_SOURCES_LINE
    return (
        f"*TathyaSetu Report* {emoji}\n\n"
        f"*Verdict:* {result.verdict.value}\n"
        f"*Confidence:* {result.confidence}%\n\n"
        f"_{result.summary}_\n\n"
        f"*Key Findings:*\n{findings}\n\n"
        f"*Verified Sources:*\n{sources}"
    )


def format_console_report(content: str, outcome: AnalysisOutcome) -> str:
    """Plain-text report for the command line."""
    result = outcome.result
    lines = [
        f"CONTENT: {content}",
        f"VERDICT: {result.verdict.value} (Confidence: {result.confidence}%)",
        f"SUMMARY: {result.summary}",
        f"ANALYSIS: {result.detailed_analysis}",
        "",
        "KEY POINTS:",
    ]
    lines.extend(f"  - {point}" for point in result.key_points)

    if result.existing_fact_checks:
        lines.append("")
        lines.append("EXISTING FACT-CHECKS:")
        for check in result.existing_fact_checks:
            rating = f" [{check.rating}]" if check.rating else ""
            by = f" ({check.fact_checker_name})" if check.fact_checker_name else ""
            lines.append(f"  - {check.claim or 'Claim'}{rating}{by} {check.url}".rstrip())

    lines.append("")
    lines.append("SOURCES:")
    if outcome.sources:
        for i, source in enumerate(outcome.sources, 1):
            lines.append(f"  {i}. {source.title or source.uri}")
            lines.append(f"     {source.uri}")
    else:
        lines.append(f"  {NO_SOURCES_LINE}")
    return "\n".join(lines)
