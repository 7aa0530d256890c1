from .automations import run_automation_event_job, run_due_date_sweep_job

__all__ = [
    "run_automation_event_job",
    "run_due_date_sweep_job",
]
