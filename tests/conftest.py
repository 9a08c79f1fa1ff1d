"""Shared fixtures for workflow-patterns tests."""

import uuid

import pytest
from typer.testing import CliRunner

from workflow_patterns.config import WorkflowConfig, clear_config_cache
from workflow_patterns.contributor import ContributorManager
from workflow_patterns.patterns.models import (
    Architecture,
    Blueprint,
    Compatibility,
    DirectoryEntry,
    FixPattern,
    Implementation,
    KeyFile,
    PatternSolution,
    PatternTag,
    PatternTrigger,
    ProblemDefinition,
    Setup,
    SetupStep,
    SolutionFile,
    SolutionPattern,
    SolutionStep,
    Stack,
    Structure,
)
from workflow_patterns.patterns.store import PatternStore


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep the developer's environment out of config parsing."""
    monkeypatch.delenv("WORKFLOW_REGISTRY_URL", raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def workspace(tmp_path):
    """An empty workspace root."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def config(workspace):
    return WorkflowConfig(repo_root=str(workspace))


@pytest.fixture
def store(config):
    return PatternStore(config=config)


@pytest.fixture
def contributor(config):
    return ContributorManager(config=config)


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    return CliRunner()


def build_fix(name="Fix memory leak", **overrides):
    """A valid fix pattern; keyword arguments replace fields."""
    fields = dict(
        id=str(uuid.uuid4()),
        name=name,
        description="Release listeners when the component unmounts",
        category="runtime",
        trigger=PatternTrigger(
            error_pattern=r"MaxListenersExceededWarning",
            error_message="Possible EventEmitter memory leak detected",
        ),
        solution=PatternSolution(
            type="file-change",
            steps=[
                SolutionStep(
                    order=1,
                    action="modify",
                    target="src/hooks/useEvents.ts",
                    description="Return a cleanup function from the effect",
                    content="return () => emitter.off('change', handler);",
                ),
            ],
        ),
        compatibility=Compatibility(framework="react", framework_version="18.2.0"),
        tags=[PatternTag(name="react", category="framework")],
    )
    fields.update(overrides)
    return FixPattern(**fields)


def build_blueprint(name="Next.js starter", **overrides):
    """A valid blueprint; keyword arguments replace fields."""
    fields = dict(
        id=str(uuid.uuid4()),
        name=name,
        description="App router project with strict TypeScript",
        stack=Stack(
            framework="next",
            language="typescript",
            runtime="node",
            package_manager="pnpm",
        ),
        structure=Structure(
            directories=[DirectoryEntry(path="src/app", purpose="Routes")],
            key_files=[KeyFile(path="next.config.js", purpose="Framework config")],
        ),
        setup=Setup(
            prerequisites=["node 20"],
            steps=[SetupStep(order=1, command="pnpm install", description="Install dependencies")],
        ),
        compatibility=Compatibility(framework="next", framework_version="14.1.0"),
    )
    fields.update(overrides)
    return Blueprint(**fields)


def build_solution(name="JWT authentication", **overrides):
    """A valid solution pattern; keyword arguments replace fields."""
    fields = dict(
        id=str(uuid.uuid4()),
        name=name,
        description="Stateless login with signed access tokens",
        category="auth",
        problem=ProblemDefinition(
            keywords=["auth", "jwt", "login"],
            description="Users need to log in without server sessions",
        ),
        implementation=Implementation(
            files=[
                SolutionFile(
                    path="src/auth/token.ts",
                    purpose="Sign and verify tokens",
                    role="service",
                    content="export const sign = () => {};",
                ),
            ],
        ),
        architecture=Architecture(data_flow="login -> sign -> cookie"),
        compatibility=Compatibility(framework="express", framework_version="4.18.0"),
    )
    fields.update(overrides)
    return SolutionPattern(**fields)


@pytest.fixture
def make_fix():
    return build_fix


@pytest.fixture
def make_blueprint():
    return build_blueprint


@pytest.fixture
def make_solution():
    return build_solution
