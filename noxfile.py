"""nox configuration for oidclogin."""

import nox
from nox_uv import session

# Default sessions.
nox.options.sessions = ["typing", "test-coverage", "coverage-report"]

# Other nox defaults.
nox.options.default_venv_backend = "uv"
nox.options.reuse_existing_virtualenvs = True


@session(name="coverage-report", uv_extras=["test"])
def coverage_report(session: nox.Session) -> None:
    """Generate a code coverage report from the test suite."""
    session.run("coverage", "report", *session.posargs)


@session(uv_extras=["test"])
def test(session: nox.Session) -> None:
    """Run the test suite."""
    session.run("pytest", *session.posargs)


@session(name="test-coverage", uv_extras=["test"])
def test_coverage(session: nox.Session) -> None:
    """Run the test suite with coverage enabled."""
    session.run(
        "pytest",
        "--cov=oidclogin",
        "--cov-branch",
        "--cov-report=",
        *session.posargs,
    )


@session(uv_extras=["test", "typing"])
def typing(session: nox.Session) -> None:
    """Run mypy."""
    session.run("mypy", *session.posargs, "noxfile.py", "src", "tests")
