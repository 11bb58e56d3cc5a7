"""Safety validation and remediation execution."""
