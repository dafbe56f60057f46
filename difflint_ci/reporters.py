from __future__ import annotations

import json
from pathlib import Path

from difflint_ci import __version__
from difflint_ci.models import RunReport


OUTCOME_LABELS = {
    "skipped": "SKIPPED ⏭️",
    "no_files": "PASS ✅ (no files changed)",
    "passed": "PASS ✅",
    "violations": "FAIL ❌",
    "error": "ERROR ⚠️",
}


def write_json_report(report: RunReport, path: Path) -> None:
    payload = report.to_dict()
    payload["tool"] = {"name": "difflint-ci", "version": __version__}
    path.write_text(json.dumps(payload, indent=2))


def build_markdown_report(report: RunReport) -> str:
    ctx = report.context
    lines = [
        "# difflint-ci report",
        "",
        f"- **Result:** {OUTCOME_LABELS.get(report.outcome, report.outcome)}",
        f"- **CI Provider:** {ctx.provider if ctx else 'n/a'}",
        f"- **Commit Range:** `{report.commit_range}`" if report.commit_range else "- **Commit Range:** n/a",
        f"- **Files Modified:** {len(report.files)}",
        f"- **Violations:** {len(report.violations)}",
    ]
    if report.message:
        lines.append(f"- **Details:** {report.message}")
    lines.append("")

    for group in report.groups:
        lines.extend([f"## {group.name}", ""])
        if group.config:
            lines.append(f"- Config: `{group.config}`")
        lines.append(f"- Files checked: {len(group.files)}")
        if group.filtered_out:
            lines.append(f"- Ignored on unchanged lines: {group.filtered_out}")
        lines.append("")
        if not group.files:
            lines.append("No files in this group.")
        elif not group.violations:
            lines.append("No problem detected by flake8. 🎉")
        else:
            for v in group.violations:
                lines.append(f"- `{v.path}:{v.line}:{v.column}` **{v.code}** {v.text}")
        lines.append("")

    return "\n".join(lines)


def write_markdown_report(report: RunReport, path: Path) -> None:
    path.write_text(build_markdown_report(report))
