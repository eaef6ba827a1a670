import io
from datetime import datetime

import pytest

from phptop.errors import ConfigError
from phptop.models import FinalizedEntry, FinalizedStats
from phptop.render import MarkupRenderer, TextRenderer, detect_width
from phptop.report import ReportBuilder

from conftest import NOW


@pytest.fixture
def reports():
    stats = FinalizedStats(
        entries={
            "https://example.org/checkout": FinalizedEntry(
                hit=3, time=9.0, user=6.0, sys=0.3, mem=12.5, mem_max=20.0
            ),
            "https://example.org/<script>": FinalizedEntry(
                hit=7, time=1.4, user=0.7, sys=0.1, mem=2.0, mem_max=2.5
            ),
        },
        hits=10,
        bogus=0,
        now=NOW,
        span=300,
    )
    builder = ReportBuilder(stats)
    return [builder.build("hit"), builder.build("time")]


class FakeTerminal(io.StringIO):
    def isatty(self) -> bool:
        return True


def test_text_output_to_pipe_is_not_truncated(reports):
    stream = io.StringIO()

    TextRenderer().render(reports, stream)
    output = stream.getvalue()

    assert "https://example.org/checkout" in output
    assert "https://example.org/<script>" in output
    assert "Total (300s window)" in output
    assert "12.5" in output and "20.0" in output


def test_text_output_orders_rows_and_separates_reports(reports):
    stream = io.StringIO()

    TextRenderer().render(reports, stream)
    first, second = stream.getvalue().split("\n\n", 1)

    assert first.index("<script>") < first.index("checkout")
    assert second.index("checkout") < second.index("<script>")


def test_text_output_highlights_sort_column(reports):
    stream = io.StringIO()

    TextRenderer().render(reports[:1], stream)
    header = stream.getvalue().splitlines()[0]

    assert "HITS" in header
    assert "Time" in header and "TIME" not in header


def test_text_output_truncates_to_terminal_width(reports):
    stream = io.StringIO()

    TextRenderer(width=82).render(reports, stream)
    lines = [line for line in stream.getvalue().splitlines() if line.strip()]

    assert all(len(line.rstrip()) <= 82 for line in lines)
    assert "https://example.org/checkout" not in stream.getvalue()
    assert "…" in stream.getvalue()


def test_terminal_too_narrow(reports):
    with pytest.raises(ConfigError, match="too narrow"):
        TextRenderer(width=60).render(reports, io.StringIO())


def test_detect_width(monkeypatch):
    monkeypatch.setenv("COLUMNS", "132")

    assert detect_width(io.StringIO()) is None
    assert detect_width(FakeTerminal()) == 132

    monkeypatch.setenv("COLUMNS", "wide")
    with pytest.raises(ConfigError):
        detect_width(FakeTerminal())


def test_markup_document(reports):
    renderer = MarkupRenderer(
        argv=["report", "-s", "hit,time"],
        hostname="web1",
        generated_at=datetime(2026, 10, 19, 12, 0, 0),
    )

    document = renderer.render_document(reports)

    assert document.startswith("<!DOCTYPE html>")
    assert document.count('<table class="phptop">') == 2
    assert '<th class="num sort">Hits</th>' in document
    assert '<th class="num sort">Time</th>' in document
    assert '<th class="url">URL</th>' in document
    assert '<td class="url">https://example.org/&lt;script&gt;</td>' in document
    assert '<tr class="sum"><td class="url">Total (300s window)</td>' in document
    assert "Generated by phptop on web1 at 2026-10-19 12:00:00" in document
    assert "with arguments: report -s hit,time" in document
    assert "$tables" not in document


def test_markup_render_writes_stream(reports):
    stream = io.StringIO()

    MarkupRenderer(hostname="web1").render(reports, stream)

    assert stream.getvalue().rstrip().endswith("</html>")
