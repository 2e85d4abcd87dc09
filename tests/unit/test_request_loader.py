"""
Unit tests for request record loading.
"""

import gzip
import json
from datetime import datetime, timezone

import pytest

from request_bot_detection.ingestion import (
    ParseError,
    ValidationError,
    detect_format,
    load_request_records,
)

CSV_CONTENT = """source_ip,created_at,user_agent_string,url,referer,method,status_code,user_id
203.0.113.5,2024-06-01T12:00:00Z,Mozilla/5.0,/blog/hello?page=2,https://indeed.com,get,200,
203.0.113.6,2024-06-01T12:00:01Z,,/projects,,POST,302,7
"""


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / "requests.csv"
    path.write_text(CSV_CONTENT)
    return path


class TestDetectFormat:
    """Tests for format detection."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("requests.csv", "csv"),
            ("requests.CSV.gz", "csv"),
            ("requests.json", "json"),
            ("requests.jsonl", "ndjson"),
            ("requests.ndjson.gz", "ndjson"),
        ],
    )
    def test_known_suffixes(self, name, expected):
        assert detect_format(name) == expected

    def test_unknown_suffix(self):
        with pytest.raises(ParseError):
            detect_format("requests.parquet")


class TestLoadCsv:
    """Tests for CSV files."""

    def test_aliases_and_types(self, csv_file):
        records = load_request_records(csv_file)

        assert len(records) == 2
        first, second = records
        assert first["ip_address"] == "203.0.113.5"
        assert first["created_at"] == datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
        assert first["user_agent"] == "Mozilla/5.0"
        assert first["referer_url"] == "https://indeed.com"
        assert first["method"] == "GET"
        assert first["status_code"] == 200
        assert first["user_id"] is None
        assert second["user_agent"] is None
        assert second["referer_url"] is None
        assert second["user_id"] == 7

    def test_gzip(self, tmp_path):
        path = tmp_path / "requests.csv.gz"
        with gzip.open(path, "wt") as f:
            f.write(CSV_CONTENT)

        assert len(load_request_records(path)) == 2


class TestLoadJson:
    """Tests for JSON and NDJSON files."""

    def test_json_array(self, tmp_path):
        path = tmp_path / "requests.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "ip_address": "198.51.100.1",
                        "created_at": "2024-06-01T12:00:00+00:00",
                        "url": "/",
                        "user_id": 12,
                    }
                ]
            )
        )

        records = load_request_records(path)

        assert records[0]["ip_address"] == "198.51.100.1"
        assert records[0]["user_id"] == 12
        assert records[0]["method"] == "GET"

    def test_ndjson(self, tmp_path):
        path = tmp_path / "requests.ndjson"
        lines = [
            {"source_ip": "198.51.100.1", "created_at": "2024-06-01T12:00:00Z"},
            {"source_ip": "198.51.100.2", "created_at": "2024-06-01T12:00:05Z"},
        ]
        path.write_text("\n".join(json.dumps(line) for line in lines))

        records = load_request_records(path)

        assert [r["ip_address"] for r in records] == ["198.51.100.1", "198.51.100.2"]


class TestValidation:
    """Tests for rejected input."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_request_records(tmp_path / "missing.csv")

    def test_missing_required_column(self, tmp_path):
        path = tmp_path / "requests.csv"
        path.write_text("ip_address,url\n203.0.113.5,/\n")

        with pytest.raises(ValidationError, match="created_at"):
            load_request_records(path)

    def test_bad_timestamp(self, tmp_path):
        path = tmp_path / "requests.csv"
        path.write_text("ip_address,created_at\n203.0.113.5,yesterday\n")

        with pytest.raises(ValidationError) as exc_info:
            load_request_records(path)

        assert exc_info.value.field == "created_at"
        assert exc_info.value.row == 0

    def test_bad_integer(self, tmp_path):
        path = tmp_path / "requests.csv"
        path.write_text("ip_address,created_at,user_id\n203.0.113.5,2024-06-01,abc\n")

        with pytest.raises(ValidationError, match="user_id"):
            load_request_records(path)

    def test_epoch_timestamps_in_csv(self, tmp_path):
        """Numeric created_at text is read as epoch seconds or milliseconds."""
        path = tmp_path / "requests.csv"
        path.write_text(
            "ip_address,created_at\n203.0.113.5,1717243200\n203.0.113.6,1717243200000\n"
        )

        records = load_request_records(path)

        expected = datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
        assert [r["created_at"] for r in records] == [expected, expected]

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "requests.json"
        path.write_text("[{not json")

        with pytest.raises(ParseError):
            load_request_records(path)
