from statement_ingest.extraction.prompt_loader import load_fix_template
from statement_ingest.quality.models import CheckReport


def build_fix_feedback(report: CheckReport, template: str | None = None) -> str:
    """Describe the failed rules so the next extraction can correct them."""
    lines = []
    for rule in report.failed_rules:
        line = f"- {rule.name} ({rule.severity}): {rule.message}"
        if rule.expected is not None or rule.actual is not None:
            line += f" [expected {rule.expected}, got {rule.actual}]"
        lines.append(line)
    issues = "\n".join(lines) or "- No specific rule failures were recorded."
    return (template or load_fix_template()).format(issues=issues)
