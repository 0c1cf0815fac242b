import os
import sys

import pytest

# Ensure repo-local imports (e.g., `import fishlink`) resolve without extra setup.
root_dir = os.path.abspath(os.path.dirname(__file__))
if root_dir not in sys.path:
    sys.path.insert(0, root_dir)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "-P",
        "--process",
        action="store_true",
        default=False,
        dest="run_process",
        help="Run tests marked with @pytest.mark.process (spawn a scripted engine subprocess)",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "process: spawns a real engine subprocess through QProcess"
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if not config.getoption("run_process"):
        skip_process = pytest.mark.skip(reason="use -P/--process to enable subprocess tests")
        for item in items:
            if "process" in item.keywords:
                item.add_marker(skip_process)


@pytest.fixture(scope="session")
def qt_app():
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app
