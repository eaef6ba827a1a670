import pytest

from phptop.models import FinalizedEntry, FinalizedStats
from phptop.report import RenderPolicy, ReportBuilder, format_cell

from conftest import NOW


def make_stats(entries: dict[str, FinalizedEntry], hits: int | None = None, span: int = 300):
    if hits is None:
        hits = sum(entry.hit for entry in entries.values())
    return FinalizedStats(entries=entries, hits=hits, bogus=0, now=NOW, span=span)


@pytest.fixture
def stats() -> FinalizedStats:
    return make_stats(
        {
            "/a": FinalizedEntry(hit=5, time=10.0, user=4.0, sys=1.0, mem=2.0, mem_max=3.0),
            "/b": FinalizedEntry(hit=20, time=6.0, user=3.0, sys=0.5, mem=1.0, mem_max=8.0),
            "/c": FinalizedEntry(hit=1, time=30.0, user=20.0, sys=2.0, mem=16.0, mem_max=16.0),
            "/d": FinalizedEntry(hit=1, time=0.1, user=0.1, sys=0.0),
        }
    )


@pytest.mark.parametrize("sort_key", ["hit", "time", "user", "sys", "mem", "mem_max"])
def test_rows_are_non_increasing(stats: FinalizedStats, sort_key: str):
    report = ReportBuilder(stats).build(sort_key)

    assert report.sort_key == sort_key
    assert report.sort_values == sorted(report.sort_values, reverse=True)
    assert len(report.rows) == 4


def test_top_n_and_totals_over_all_entries(stats: FinalizedStats):
    report = ReportBuilder(stats, count=2).build("time")

    assert [row.label for row in report.rows] == ["/c", "/a"]
    assert report.total.cells["hit"] == "27"
    assert report.total.cells["time"] == "46.1"
    assert report.total.cells["user"] == "27.1"
    assert report.total.cells["sys"] == "3.5"
    assert report.total.cells["mem"] == ""
    assert report.total.cells["mem_max"] == ""
    assert report.total.label == "Total (300s window)"


def test_ties_break_on_identifier():
    stats = make_stats(
        {
            "/z": FinalizedEntry(hit=3, time=1.0),
            "/a": FinalizedEntry(hit=3, time=1.0),
            "/m": FinalizedEntry(hit=3, time=1.0),
        }
    )

    report = ReportBuilder(stats).build("hit")

    assert [row.label for row in report.rows] == ["/a", "/m", "/z"]


def test_absolute_cells(stats: FinalizedStats):
    report = ReportBuilder(stats).build("hit")
    row = report.rows[0]

    assert row.label == "/b"
    assert row.cells == {
        "hit": "20",
        "time": "6.0",
        "user": "3.0",
        "sys": "0.5",
        "mem": "1.0",
        "mem_max": "8.0",
    }


def test_absent_metric_renders_blank(stats: FinalizedStats):
    report = ReportBuilder(stats).build("hit")
    row = next(row for row in report.rows if row.label == "/d")

    assert row.cells["mem"] == ""
    assert row.cells["mem_max"] == ""


def test_relative_hits():
    stats = make_stats({"/a": FinalizedEntry(hit=5, time=1.0)}, hits=100)

    report = ReportBuilder(stats, policy=RenderPolicy.RELATIVE).build("hit")

    assert report.rows[0].cells["hit"] == "5.0%"


def test_relative_times_are_share_of_span(stats: FinalizedStats):
    report = ReportBuilder(stats, policy=RenderPolicy.RELATIVE).build("time")
    row = report.rows[0]

    assert row.label == "/c"
    assert row.cells["time"] == "10.0%"
    assert row.cells["user"] == "6.7%"
    assert row.cells["mem"] == "16.0"
    assert report.total.cells["hit"] == "100.0%"


def test_average_cells(stats: FinalizedStats):
    report = ReportBuilder(stats, policy=RenderPolicy.AVERAGE).build("hit")
    row = report.rows[0]

    assert row.cells["hit"] == "20"
    assert row.cells["time"] == "0.300"
    assert row.cells["sys"] == "0.025"
    assert row.cells["mem"] == "1.000"
    assert report.total.cells["time"] == f"{46.1 / 27:.3f}"


def test_average_relative_combines_both(stats: FinalizedStats):
    report = ReportBuilder(stats, policy=RenderPolicy.AVERAGE_RELATIVE).build("hit")
    row = report.rows[0]

    assert row.cells["hit"] == f"{20 * 100 / 27:.1f}%"
    assert row.cells["time"] == "0.300"


@pytest.mark.parametrize(
    ("relative", "average", "expected"),
    [
        (False, False, RenderPolicy.ABSOLUTE),
        (True, False, RenderPolicy.RELATIVE),
        (False, True, RenderPolicy.AVERAGE),
        (True, True, RenderPolicy.AVERAGE_RELATIVE),
    ],
)
def test_policy_from_flags(relative: bool, average: bool, expected: RenderPolicy):
    assert RenderPolicy.from_flags(relative=relative, average=average) is expected


def test_format_cell_edge_cases():
    common = {"policy": RenderPolicy.RELATIVE, "span": 300, "total_hits": 0}

    assert format_cell("hit", 3, hits=3, **common) == ""
    assert format_cell("time", None, hits=3, **common) == ""
    assert format_cell("hit", 7.0, hits=7, policy=RenderPolicy.ABSOLUTE, span=300, total_hits=7) == "7"
