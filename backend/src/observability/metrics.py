"""Prometheus metrics for DocFlow.

Defines the operational metrics of the workflow engine.
"""

from prometheus_client import Counter

# Workflow lifecycle metrics
workflow_transitions_total = Counter(
    "docflow_workflow_transitions_total",
    "Workflow instance transitions applied",
    ["transition"]  # start|advance|approve|reject|cancel
)

workflow_rejected_operations_total = Counter(
    "docflow_workflow_rejected_operations_total",
    "Workflow operations refused by a business rule",
    ["operation", "error"]  # error: not_found|conflict|invalid_state|forbidden|invalid_input
)

# Best-effort side effects
side_effect_failures_total = Counter(
    "docflow_side_effect_failures_total",
    "Notification or activity-log writes that failed and were swallowed",
    ["kind"]  # notification|activity_log
)
