from prometheus_client import Counter


scheduler_cycles_total = Counter(
    "reminder_scheduler_cycles_total",
    "Total scan-and-dispatch cycles run",
    ["trigger"],
)

scheduler_cycles_skipped_total = Counter(
    "reminder_scheduler_cycles_skipped_total",
    "Cycles skipped because another cycle was still running",
    ["trigger"],
)

reminders_scanned_total = Counter(
    "reminders_scanned_total",
    "Reminders returned by the due-date query",
)

reminders_eligible_total = Counter(
    "reminders_eligible_total",
    "Reminders left after status and debounce filtering",
)

reminders_orphaned_total = Counter(
    "reminders_orphaned_total",
    "Reminders deleted because no owner could be resolved",
    ["reason"],
)

reminders_backfilled_total = Counter(
    "reminders_backfilled_total",
    "Reminders whose user_id was recovered and written back",
    ["source"],
)

reminders_dispatch_success_total = Counter(
    "reminders_dispatch_success_total",
    "Reminders handed to the push gateway",
)

reminders_dispatch_failed_total = Counter(
    "reminders_dispatch_failed_total",
    "Reminders whose dispatch raised",
)

push_token_results_total = Counter(
    "reminder_push_token_results_total",
    "Per-token multicast results",
    ["outcome"],
)

device_tokens_pruned_total = Counter(
    "reminder_device_tokens_pruned_total",
    "Device tokens deleted after a permanent delivery failure",
    ["error_code"],
)
