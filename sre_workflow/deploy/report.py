"""Publishing deploy reports to GitHub Actions."""

import os
from pathlib import Path

from sre_workflow.deploy.models import DeployReport


def write_outputs(report: DeployReport, output_file: str | None = None) -> bool:
    """Append step outputs as ``key=value`` lines.

    Args:
        report: Finished deploy report
        output_file: Output path, defaults to ``GITHUB_OUTPUT``

    Returns:
        True if outputs were written
    """
    output_file = output_file or os.environ.get("GITHUB_OUTPUT")
    if not output_file:
        return False

    outputs = {
        "outcome": report.outcome.value,
        "severity": report.severity,
        "recovered": str(report.recovered).lower(),
        "digest": report.digest or "",
        "revision": report.new_revision or "",
        "previous_revision": report.previous_revision or "",
        "service_url": report.service_url or "",
    }
    with open(output_file, "a") as f:
        for name, value in outputs.items():
            f.write(f"{name}={value}\n")
    return True


def render_summary(report: DeployReport) -> str:
    """Render a markdown summary table for the job page."""
    icon = {
        "info": ":white_check_mark:",
        "warning": ":warning:",
        "error": ":x:",
        "critical": ":rotating_light:",
    }[report.severity]

    rows = [
        ("Service", report.service),
        ("Outcome", f"`{report.outcome.value}`"),
        ("Image", report.image),
        ("Digest", report.digest),
        ("New revision", report.new_revision),
        ("Previous revision", report.previous_revision),
        ("URL", report.service_url),
    ]
    if report.probe:
        rows.append(
            (
                "Probe",
                f"{'healthy' if report.probe.healthy else 'unhealthy'} after "
                f"{report.probe.attempts} attempt(s)",
            )
        )

    lines = [
        f"## {icon} Deploy: {report.summary()}",
        "",
        "| Field | Value |",
        "|---|---|",
    ]
    lines += [f"| {name} | {value if value else '-'} |" for name, value in rows]
    if report.events:
        lines += ["", "### Events", ""]
        lines += [f"- {event}" for event in report.events]
    return "\n".join(lines) + "\n"


def write_summary(report: DeployReport, summary_file: str | None = None) -> bool:
    """Append the markdown summary to ``GITHUB_STEP_SUMMARY``."""
    summary_file = summary_file or os.environ.get("GITHUB_STEP_SUMMARY")
    if not summary_file:
        return False

    with Path(summary_file).open("a") as f:
        f.write(render_summary(report))
    return True
