"""Tests for Markdown export of responses."""
from pathlib import Path

import pytest

from docrelay.operations.storage import load_result, result_path_for, write_result
from docrelay.operations.types import Operation, Response


class TestResultPath:
    def test_uses_source_stem_and_operation(self, tmp_path):
        path = result_path_for(tmp_path, "Quarterly Report.pdf", Operation.TRANSLATE)
        assert path == tmp_path / "quarterly-report" / "translate.md"

    def test_text_snippet_without_source(self, tmp_path):
        path = result_path_for(tmp_path, None, Operation.REWRITE)
        assert path == tmp_path / "text-snippet" / "rewrite.md"


class TestWriteResult:
    """Test front matter and body layout of exported results."""

    def test_round_trip(self, tmp_path, sample_response):
        target = tmp_path / "out" / "summary.md"

        record = write_result(target, sample_response, {"model": "simulated"})
        loaded = load_result(target)

        assert record.path == target
        assert loaded.body == "## Summary\n\nA short summary of the quarterly report.\n"
        assert loaded.metadata == {
            "operation": "summarize",
            "elapsed_seconds": 0.42,
            "source_name": "report.txt",
            "model": "simulated",
        }

    def test_file_layout(self, tmp_path, sample_response):
        target = tmp_path / "summary.md"
        write_result(target, sample_response)

        content = target.read_text(encoding="utf-8")

        assert content.startswith("---\n")
        assert "\n---\n\n## Summary\n" in content
        assert content.endswith("report.\n")

    def test_falls_back_to_plain_text(self, tmp_path):
        response = Response(
            text="Bonjour", operation=Operation.TRANSLATE, elapsed_seconds=0.1, raw_diagnostics="{}", formatted=""
        )
        target = tmp_path / "t.md"

        record = write_result(target, response)

        assert record.body == "Bonjour\n"
        assert "source_name" not in record.metadata

    def test_rejects_non_mapping_metadata(self, tmp_path, sample_response):
        with pytest.raises(TypeError):
            write_result(tmp_path / "x.md", sample_response, metadata=["model"])


def test_load_without_front_matter(tmp_path):
    path = Path(tmp_path) / "plain.md"
    path.write_text("just text", encoding="utf-8")

    record = load_result(path)

    assert record.metadata == {}
    assert record.body == "just text"
