"""Tests for the command-line interface."""

import json

from taskparse import cli
from taskparse.config import settings
from taskparse.schemas import GeneratedSubtask
from taskparse.services import task_extractor


class TestDateCommand:
    def test_resolves_phrase(self, capsys):
        assert cli.main(["date", "tomorrow", "--timezone", "Asia/Tokyo"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["matched"] is True
        assert output["confidence"] == "high"
        assert output["display"] == "Tomorrow"
        assert output["timezone"] == "Asia/Tokyo"
        assert output["date"].endswith("T17:00:00+09:00")

    def test_unmatched_phrase(self, capsys):
        assert cli.main(["date", "whenever you feel like it"]) == 1

        output = json.loads(capsys.readouterr().out)
        assert output == {"matched": False, "input": "whenever you feel like it"}


class TestFormatCommand:
    def test_formats_far_date(self, capsys):
        assert cli.main(["format", "2024-01-01", "--timezone", "Pacific/Kiritimati"]) == 0
        assert capsys.readouterr().out.strip() == "Jan 1"

    def test_invalid_date(self, capsys):
        assert cli.main(["format", "2024-13-45"]) == 2
        assert capsys.readouterr().out.startswith("Error:")


class TestTaskCommand:
    def test_requires_api_key(self, capsys, monkeypatch):
        monkeypatch.setattr(settings, "llm_provider", "openai")
        monkeypatch.setattr(settings, "openai_api_key", "")

        assert cli.main(["task", "Book the room", "--member", "Mike Lee"]) == 1
        assert "no API key configured" in capsys.readouterr().out


class TestSubtasksCommand:
    def test_prints_generated_subtasks(self, capsys, monkeypatch):
        class FakeGenerator:
            def __init__(self):
                self.provider = self
                self.closed = False

            def generate(self, title, description=None):
                assert (title, description) == ("Plan the social", "Budget $300")
                return [GeneratedSubtask(title="Book venue", estimated_hours=2.0)]

            def close(self):
                self.closed = True

        monkeypatch.setattr(settings, "llm_provider", "openai")
        monkeypatch.setattr(settings, "openai_api_key", "sk-test")
        monkeypatch.setattr(task_extractor, "SubtaskGenerator", FakeGenerator)

        code = cli.main(["subtasks", "Plan the social", "--description", "Budget $300"])

        assert code == 0
        assert json.loads(capsys.readouterr().out) == [
            {"title": "Book venue", "estimated_hours": 2.0}
        ]

    def test_requires_api_key(self, capsys, monkeypatch):
        monkeypatch.setattr(settings, "llm_provider", "openai")
        monkeypatch.setattr(settings, "openai_api_key", "")

        assert cli.main(["subtasks", "Plan the social"]) == 1
        assert "no API key configured" in capsys.readouterr().out


def test_check_config_without_key(capsys, monkeypatch):
    monkeypatch.setattr(settings, "llm_provider", "openai")
    monkeypatch.setattr(settings, "openai_api_key", "")

    assert cli.main(["check-config"]) == 1
    out = capsys.readouterr().out
    assert "[-] OpenAI API Key: MISSING" in out
    assert "Deadline hour:" in out
