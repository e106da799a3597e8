import io
import uuid

from bgbatch.modules.jobs.schemas import ReportedStatus
from bgbatch.modules.jobs.staging import IncomingFile, JobStager
from bgbatch.modules.jobs.status import StatusOracle


def _stage(workspace):
    return JobStager(workspace).stage([IncomingFile("a.jpg", io.BytesIO(b"a"))])


def test_empty_output_directory_is_processing(workspace):
    batch = _stage(workspace)

    reading = StatusOracle(workspace).inspect(batch.job_id)

    assert reading.status == ReportedStatus.PROCESSING
    assert reading.files == []


def test_output_entries_mean_completed_with_exactly_those_files(workspace):
    batch = _stage(workspace)
    for name in ("z.png", "a.png", "m.png"):
        (batch.dirs.output_dir / name).write_bytes(b"out")

    reading = StatusOracle(workspace).inspect(batch.job_id)

    assert reading.is_completed
    assert set(reading.files) == {"a.png", "m.png", "z.png"}
    assert len(reading.files) == 3


def test_unknown_job_id_reads_as_processing(workspace):
    reading = StatusOracle(workspace).inspect(str(uuid.uuid4()))

    assert reading.status == ReportedStatus.PROCESSING


def test_malformed_job_ids_never_escape_the_output_root(workspace):
    # The output root itself and its parent both have entries
    _stage(workspace)
    oracle = StatusOracle(workspace)

    for job_id in ("..", ".", "", "../uploads", "not-a-uuid"):
        assert oracle.inspect(job_id).status == ReportedStatus.PROCESSING


def test_removed_output_directory_reads_as_processing(workspace):
    batch = _stage(workspace)
    (batch.dirs.output_dir / "done.png").write_bytes(b"out")
    workspace.discard(batch.job_id)

    assert StatusOracle(workspace).inspect(batch.job_id).status == ReportedStatus.PROCESSING


def test_jobs_are_isolated_by_directory(workspace):
    first = _stage(workspace)
    second = _stage(workspace)
    oracle = StatusOracle(workspace)

    (second.dirs.output_dir / "second.png").write_bytes(b"out")

    assert oracle.inspect(first.job_id).status == ReportedStatus.PROCESSING
    assert oracle.inspect(second.job_id).files == ["second.png"]

    (first.dirs.output_dir / "first.png").write_bytes(b"out")

    assert oracle.inspect(first.job_id).files == ["first.png"]
    assert oracle.inspect(second.job_id).files == ["second.png"]


def test_inspect_is_idempotent(workspace):
    batch = _stage(workspace)
    (batch.dirs.output_dir / "r.png").write_bytes(b"out")
    oracle = StatusOracle(workspace)

    readings = [oracle.inspect(batch.job_id) for _ in range(3)]

    assert readings[0] == readings[1] == readings[2]
    assert list((batch.dirs.output_dir).iterdir())[0].name == "r.png"
