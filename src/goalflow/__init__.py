"""goalflow: goal planning, bounded retries and escalation for role-based workers."""

__version__ = "0.1.0"
