from click.testing import CliRunner

from studysync.cli import cli


def _run(tmp_path, *args):
    return CliRunner().invoke(cli, ["--data-dir", str(tmp_path), *args])


def test_refresh_falls_back_to_demo(tmp_path):
    result = _run(tmp_path, "refresh", "timetable")

    assert result.exit_code == 0, result.output
    assert "168 timetable record(s)." in result.output
    assert "+168 new" in result.output
    assert (tmp_path / "timetable.json").exists()


def test_exam_commands(tmp_path):
    added = _run(tmp_path, "exams", "add", "Biochemie", "2026-06-01", "-t", "Glykolyse", "-t", "Citratcyclus")
    assert added.exit_code == 0, added.output
    assert "2026-05-29" in added.output

    listing = _run(tmp_path, "exams", "list")
    assert "Biochemie" in listing.output
    exam_id = next(line for line in listing.output.splitlines() if line.endswith("Biochemie")).split()[0]

    done = _run(tmp_path, "exams", "status", exam_id, "done")
    assert "is now done" in done.output

    assert _run(tmp_path, "exams", "delete", exam_id).exit_code == 0
    assert _run(tmp_path, "exams", "delete", exam_id).exit_code != 0


def test_exam_add_rejects_bad_date(tmp_path):
    result = _run(tmp_path, "exams", "add", "Biochemie", "someday")
    assert result.exit_code != 0
    assert "Invalid exam date" in result.output


def test_ical_export(tmp_path):
    _run(tmp_path, "exams", "add", "Physik", "2026-07-01", "-t", "Optik")
    out = tmp_path / "feed.ics"

    result = _run(tmp_path, "ical", "-o", str(out))

    assert result.exit_code == 0
    assert out.read_bytes().startswith(b"BEGIN:VCALENDAR\r\n")


def test_list_sources_and_stats(tmp_path):
    sources = _run(tmp_path, "list-sources")
    assert "alma" in sources.output and "moodle-materials" in sources.output

    stats = _run(tmp_path, "stats")
    assert "last updated never" in stats.output
