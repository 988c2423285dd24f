"""
Legacy fixed-cadence injection scheduler.

Before trigger matching existed, reminders were injected on the first
interaction and every Nth interaction after that. The pipeline still uses
this as a fallback when matching activates nothing and a cadence is set.
"""


class InjectionScheduler:
    """should_inject(n) is true for n == 1 and every multiple of cadence."""

    def __init__(self, cadence: int):
        if cadence <= 0:
            raise ValueError(f"cadence must be positive, got {cadence}")
        self.cadence = cadence

    def should_inject(self, interaction: int) -> bool:
        if interaction < 1:
            raise ValueError(f"interaction numbers start at 1, got {interaction}")
        return interaction == 1 or interaction % self.cadence == 0
