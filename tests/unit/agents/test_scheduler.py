import pytest

from agents.scheduler import InjectionScheduler


@pytest.mark.parametrize("interaction, expected", [
    (1, True),
    (2, False),
    (3, True),
    (4, False),
    (6, True),
    (7, False),
])
def test_cadence_three(interaction, expected):
    assert InjectionScheduler(3).should_inject(interaction) is expected


def test_cadence_one_injects_every_time():
    scheduler = InjectionScheduler(1)
    assert all(scheduler.should_inject(n) for n in range(1, 10))


def test_invalid_cadence():
    with pytest.raises(ValueError):
        InjectionScheduler(0)


def test_interactions_start_at_one():
    with pytest.raises(ValueError):
        InjectionScheduler(3).should_inject(0)
