"""
Pytest configuration for mijia_homie tests.

- Ensures the repository root is on sys.path so `import mijia_homie` and
  `from tests.helpers... import ...` resolve without an install.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parent.parent
    root_str = str(repo_root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_repo_root_on_syspath()

from mijia_homie.channel import ReadingChannel  # noqa: E402
from mijia_homie.homie import HomieDevice  # noqa: E402
from mijia_homie.sensor_names import parse_sensor_names  # noqa: E402
from tests.helpers.util import BEDROOM, DEVICE_BASE, KITCHEN  # noqa: E402
from tests.helpers.fakes import FakeCentral, FakeMQTT  # noqa: E402



@pytest.fixture(autouse=True)
def _propagate_package_logs():
    """Let caplog see package records even after setup_logging() ran."""
    pkg = logging.getLogger("mijia_homie")
    saved = pkg.propagate
    pkg.propagate = True
    yield
    pkg.propagate = saved


@pytest.fixture
def fake_mqtt():
    return FakeMQTT()


@pytest.fixture
def fake_central():
    return FakeCentral()


@pytest.fixture
def channel():
    return ReadingChannel()


@pytest.fixture
def sensor_names():
    return parse_sensor_names([f"{KITCHEN}=Kitchen", f"{BEDROOM}=Bedroom"])


@pytest.fixture
def homie(fake_mqtt):
    device = HomieDevice(fake_mqtt, DEVICE_BASE, "Mijia bridge")
    device.start()
    device.ready()
    fake_mqtt.published.clear()
    return device
