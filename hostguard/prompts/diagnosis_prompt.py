"""Prompt templates for AI diagnosis of an alert summary."""

import json

DIAGNOSIS_SYSTEM_PROMPT = """You are an experienced Linux site reliability engineer diagnosing problems on a single production host.

You only recommend actions from this list:
- clear-cache: drop kernel page cache (low risk)
- docker-prune: remove unused Docker objects (low risk)
- rotate-logs: rotate and trim log files (low risk)
- restart-service: restart a container or systemd service; target is its name (medium risk)
- kill-runaway: terminate runaway processes; optional target PID or name (medium risk)

Mark a recommendation auto_executable only when it is low risk and safe to run unattended.
Respond with a single JSON object and nothing else.
"""

DIAGNOSIS_TASK_TEMPLATE = """
Diagnose the following alert from host {hostname}.

## Alert Summary
{summary}

## Issues
{issues}

## Current Metrics
{metrics}

## Response Format
Return JSON with exactly these keys:
{{
  "severity": "critical|warning|minor",
  "diagnosis": "what is happening",
  "root_cause": "most likely cause",
  "recommendations": [
    {{
      "action": "action name from the list",
      "description": "why it helps",
      "risk_level": "low|medium|high",
      "auto_executable": true,
      "target": "optional container, service or PID",
      "command": "the equivalent shell command, for humans"
    }}
  ],
  "requires_human": false,
  "urgency": "immediate|soon|can_wait"
}}
"""


def format_diagnosis_prompt(summary, metrics=None) -> str:
    """Format the diagnosis prompt with alert data."""
    issues = "\n".join(f"- [{i.severity.value}] {i.type}: {i.describe()}" for i in summary.issues)
    return DIAGNOSIS_TASK_TEMPLATE.format(
        hostname=summary.hostname or "unknown",
        summary=summary.summary,
        issues=issues or "None",
        metrics=json.dumps(metrics.to_dict(), indent=2) if metrics is not None else "Not available",
    )
