"""
Pytest configuration and shared fixtures for the Trellis test suite.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def make_pack():
    """A small but complete constraint pack covering every composition type."""
    return {
        "version": "1.2.0",
        "description": "Test-first, outside-in, refactoring levels and clean architecture",
        "constraints": [
            {
                "id": "testing.write-test-first",
                "title": "Write a failing test first",
                "priority": 0.92,
                "triggers": {
                    "keywords": ["test", "first"],
                    "anti_patterns": ["hotfix"],
                    "confidence_threshold": 0.6,
                },
                "reminders": ["Start with a failing test that names the behaviour."],
            },
            {
                "id": "testing.make-it-pass",
                "title": "Make the test pass with the simplest code",
                "priority": 0.85,
                "triggers": {"keywords": ["pass", "green", "implementation"], "confidence_threshold": 0.7},
                "reminders": ["Write only enough code to pass the failing test."],
            },
            {
                "id": "testing.refactor-safely",
                "title": "Refactor with the tests green",
                "priority": 0.8,
                "triggers": {"keywords": ["refactor"], "contexts": ["refactoring"], "confidence_threshold": 0.7},
                "reminders": ["Improve the design without changing behaviour."],
            },
            {
                "id": "testing.acceptance-test",
                "title": "Write an acceptance test for the feature",
                "priority": 0.9,
                "triggers": {"keywords": ["acceptance"], "confidence_threshold": 0.7},
                "reminders": ["Describe the feature from the user's point of view."],
            },
            {
                "id": "architecture.domain-pure",
                "title": "Keep the domain free of infrastructure",
                "priority": 0.7,
                "triggers": {"keywords": ["domain"]},
            },
            {
                "id": "architecture.application-services",
                "title": "Orchestrate through application services",
                "priority": 0.65,
                "triggers": {"keywords": ["service"]},
            },
            {
                "id": "architecture.infrastructure-adapters",
                "title": "Isolate infrastructure behind adapters",
                "priority": 0.6,
                "triggers": {"keywords": ["adapter"]},
            },
            *[
                {
                    "id": f"quality.level-{level}",
                    "title": title,
                    "priority": 0.5,
                    "triggers": {"keywords": [title.lower()]},
                }
                for level, title in enumerate(
                    ["Readability", "Complexity", "Responsibilities", "Abstractions", "Patterns", "SOLID"],
                    start=1,
                )
            ],
            {
                "id": "methodology.tdd",
                "title": "Test-driven development",
                "priority": 0.95,
                "triggers": {"keywords": ["tdd"], "confidence_threshold": 0.5},
                "composition": {
                    "type": "sequential",
                    "sequence": [
                        {"id": "testing.write-test-first",
                         "completion": {"workflow_state": "red", "evaluation_status": "failing"}},
                        {"id": "testing.make-it-pass",
                         "completion": {"workflow_state": "green", "evaluation_status": "passing"}},
                        {"id": "testing.refactor-safely",
                         "completion": {"workflow_state": "refactor", "evaluation_status": "passing"}},
                    ],
                },
            },
            {
                "id": "methodology.outside-in",
                "title": "Outside-in development",
                "priority": 0.9,
                "triggers": {"keywords": ["outside"], "confidence_threshold": 0.5},
                "composition": {
                    "type": "hierarchical",
                    "hierarchy": [
                        {"id": "testing.acceptance-test", "level": 0,
                         "completion": {"workflow_state": "acceptance", "evaluation_status": "failing"},
                         "gate": {"workflow_state": "acceptance", "evaluation_status": "passing"}},
                        {"id": "testing.write-test-first", "level": 1,
                         "completion": {"workflow_state": "red", "evaluation_status": "failing"}},
                        {"id": "testing.make-it-pass", "level": 2,
                         "completion": {"workflow_state": "green", "evaluation_status": "passing"}},
                    ],
                },
            },
            {
                "id": "quality.refactoring-levels",
                "title": "Refactoring levels",
                "priority": 0.75,
                "triggers": {"keywords": ["quality"], "confidence_threshold": 0.5},
                "composition": {
                    "type": "progressive",
                    "levels": [f"quality.level-{level}" for level in range(1, 7)],
                    "barrier_levels": [3, 5],
                },
            },
            {
                "id": "architecture.clean",
                "title": "Clean architecture",
                "priority": 0.8,
                "triggers": {"keywords": ["architecture"], "confidence_threshold": 0.5},
                "composition": {
                    "type": "layered",
                    "layers": [
                        {"id": "architecture.domain-pure", "name": "domain", "patterns": ["domain", "core"]},
                        {"id": "architecture.application-services", "name": "application",
                         "patterns": ["application", "services"]},
                        {"id": "architecture.infrastructure-adapters", "name": "infrastructure",
                         "patterns": ["infrastructure", "adapters"]},
                    ],
                },
            },
        ],
    }


@pytest.fixture
def sample_pack():
    return make_pack()


@pytest.fixture
def library(sample_pack):
    """A frozen library built from the sample pack."""
    from infrastructure.pack_builder import build_library

    result = build_library(sample_pack)
    assert result.success, result.errors
    return result.library


@pytest.fixture
def analyzer():
    from domain.context_analyzer import ContextAnalyzer
    return ContextAnalyzer()


@pytest.fixture
def engine(library):
    from domain.trigger_matching import TriggerMatchingEngine
    return TriggerMatchingEngine(library)


@pytest.fixture
def pipeline(library):
    from agents.pipeline import ActivationPipeline
    return ActivationPipeline(library)


@pytest.fixture
def resolver(library):
    from core.resolver import ConstraintResolver
    return ConstraintResolver(library)


@pytest.fixture
def composite_parts(library, resolver):
    """Return (composite, resolved components) for a composite id."""
    def _parts(composite_id):
        composite = library.get_constraint(composite_id).constraint
        components = resolver.resolve_references(composite)
        assert components.success
        return composite, components.components
    return _parts
