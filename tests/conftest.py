"""
Pytest configuration and shared fixtures for the test suite.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from unittest.mock import Mock

import requests

from tw_holidays import error_handler, logging_config

# Test data constants
TEST_HOLIDAYS_CSV = """Date,year,name,isHoliday,holidayCategory,description
20240101,2024,中華民國開國紀念日,是,放假之紀念日及節日,全國各機關學校放假一日。
20240208,2024,小年夜,是,調整放假,2月17日補行上班
20240217,2024,,否,補行上班,
20241010,2024,國慶日,是,放假之紀念日及節日,全國各機關學校放假一日。
20250127,2025,,是,調整放假,二月八日補行上班
20250208,2025,,否,補行上班,
"""

TEST_ALERT_FEED = {
    "title": "停班停課",
    "updated": "2024-07-24T20:00:00+08:00",
    "entry": [
        {
            "id": "CWB-001",
            "title": "停班停課通知",
            "updated": "2024-07-24T20:00:00+08:00",
            "summary": {"type": "html", "text": "[停班停課通知]臺北市:明天停止上班、停止上課。"}
        },
        {
            "id": "CWB-002",
            "title": "停班停課通知",
            "updated": "2024-07-24T20:05:00+08:00",
            "summary": {"type": "html", "text": "[停班停課通知]臺北市北投區:明天停止上班、停止上課。"}
        },
        {
            "id": "CWB-003",
            "title": "停班停課通知",
            "updated": "2024-07-24T20:10:00+08:00",
            "summary": {"type": "html", "text": "[停班停課通知]基隆市:明天停止上班，台北市正常上班上課"}
        },
        {
            "id": "CWB-004",
            "title": "停班停課通知",
            "updated": "2024-07-24T20:15:00+08:00"
        },
        {
            "id": "CWB-005",
            "title": "停班停課通知",
            "updated": "2024-07-24T20:20:00+08:00",
            "summary": {"type": "html", "text": "[停班停課通知]台北市：明天停止上班、停止上課。"}
        }
    ]
}


def make_csv_session(content: bytes) -> Mock:
    """Session whose GET streams ``content`` back in one chunk."""
    response = Mock()
    response.raise_for_status.return_value = None
    response.iter_content.return_value = [content]

    session = Mock(spec=requests.Session)
    session.get.return_value = response
    return session


def make_json_session(payload) -> Mock:
    """Session whose GET returns ``payload`` from response.json()."""
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload

    session = Mock(spec=requests.Session)
    session.get.return_value = response
    return session


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def output_dir(temp_dir):
    """Output directory for per-year documents (not created yet)."""
    return temp_dir / "data" / "holidays"


@pytest.fixture
def sample_csv_bytes():
    """Sample open data CSV as downloaded (UTF-8 with BOM)."""
    return b'\xef\xbb\xbf' + TEST_HOLIDAYS_CSV.encode('utf-8')


@pytest.fixture
def sample_alert_feed():
    return TEST_ALERT_FEED


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, temp_dir):
    """Setup test environment with temporary directories."""
    # Mock home directory to use temp directory
    monkeypatch.setenv("HOME", str(temp_dir))

    # Ensure clean environment
    monkeypatch.delenv("HOLIDAY_DATA_URL", raising=False)
    monkeypatch.delenv("HOLIDAY_OUTPUT_DIR", raising=False)
    monkeypatch.delenv("REALTIME_FEED_URL", raising=False)

    monkeypatch.setattr(error_handler, "_global_error_handler", None)

    yield temp_dir

    # handlers must be closed before temp_dir is removed
    logging_config.cleanup_logging()


@pytest.fixture
def csv_session():
    """Factory for mocked sessions serving a CSV download."""
    return make_csv_session


@pytest.fixture
def json_session():
    """Factory for mocked sessions serving a JSON document."""
    return make_json_session
