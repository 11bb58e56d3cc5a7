"""Alert analysis: thresholds, rule-based and AI diagnosis."""
