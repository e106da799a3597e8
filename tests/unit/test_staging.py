import io
import os

import pytest

from bgbatch.core.exceptions import PayloadTooLargeError, StagingError, ValidationError
from bgbatch.modules.jobs.staging import IncomingFile, JobStager, safe_extension


def _batch(*names, content=b"image-bytes"):
    return [IncomingFile(filename=name, stream=io.BytesIO(content + name.encode())) for name in names]


@pytest.mark.parametrize("size", [1, 2, 5, 10])
def test_stage_stores_one_file_per_input(workspace, size):
    # Arrange
    stager = JobStager(workspace, max_files=10)
    names = [f"photo_{i}.jpg" for i in range(size)]

    # Act
    batch = stager.stage(_batch(*names))

    # Assert
    stored = os.listdir(batch.dirs.input_dir)
    assert len(stored) == size
    assert len(set(batch.stored_names)) == size
    assert sorted(stored) == sorted(batch.stored_names)
    assert [f.original_name for f in batch.files] == names
    assert all(name.endswith(".jpg") for name in batch.stored_names)
    assert os.listdir(batch.dirs.output_dir) == []


def test_stage_preserves_content_in_submission_order(workspace):
    stager = JobStager(workspace)

    batch = stager.stage(_batch("b.png", "a.png", "c.webp"))

    for staged, original in zip(batch.files, ["b.png", "a.png", "c.webp"]):
        assert staged.original_name == original
        data = (batch.dirs.input_dir / staged.stored_name).read_bytes()
        assert data == b"image-bytes" + original.encode()


def test_duplicate_original_names_do_not_collide(workspace):
    stager = JobStager(workspace)

    batch = stager.stage(_batch("same.png", "same.png", "same.png"))

    assert len(set(batch.stored_names)) == 3
    assert len(os.listdir(batch.dirs.input_dir)) == 3


def test_job_ids_are_never_reused(workspace):
    stager = JobStager(workspace)

    ids = {stager.stage(_batch("x.png")).job_id for _ in range(25)}

    assert len(ids) == 25


def test_empty_batch_is_rejected_before_any_directory_exists(workspace):
    stager = JobStager(workspace)

    with pytest.raises(ValidationError) as exc_info:
        stager.stage([])

    assert exc_info.value.code == 400
    assert os.listdir(workspace.upload_root) == []
    assert os.listdir(workspace.output_root) == []


def test_batch_over_limit_is_rejected(workspace):
    stager = JobStager(workspace, max_files=10)

    with pytest.raises(ValidationError):
        stager.stage(_batch(*[f"{i}.png" for i in range(11)]))

    assert os.listdir(workspace.upload_root) == []


def test_stored_name_ignores_client_path_components(workspace):
    stager = JobStager(workspace)

    batch = stager.stage(_batch("../../etc/evil.PNG", "..\\..\\win.jpg", "noext"))

    stored = batch.stored_names
    assert stored[0].endswith(".png")
    assert all("/" not in name and "\\" not in name and ".." not in name for name in stored)
    assert sorted(os.listdir(batch.dirs.input_dir)) == sorted(stored)


@pytest.mark.parametrize(
    "filename,expected",
    [
        ("cat.jpg", ".jpg"),
        ("cat.JPEG", ".jpeg"),
        ("archive.tar.gz", ".gz"),
        ("noext", ""),
        ("", ""),
        (None, ""),
        ("weird.p ng", ""),
        ("dots.", ""),
    ],
)
def test_safe_extension(filename, expected):
    assert safe_extension(filename) == expected


def test_oversized_file_discards_job_directories(workspace):
    stager = JobStager(workspace, max_file_bytes=8)
    files = [IncomingFile("ok.png", io.BytesIO(b"1234")), IncomingFile("big.png", io.BytesIO(b"x" * 64))]

    with pytest.raises(PayloadTooLargeError) as exc_info:
        stager.stage(files)

    assert exc_info.value.code == 413
    assert os.listdir(workspace.upload_root) == []
    assert os.listdir(workspace.output_root) == []


def test_existing_job_directory_is_a_staging_error(workspace):
    stager = JobStager(workspace)
    job_id = "6f1c2a9e-4a5b-4c3d-8e7f-0123456789ab"
    (workspace.upload_root / job_id).mkdir()

    with pytest.raises(StagingError) as exc_info:
        stager.stage(_batch("a.png"), job_id=job_id)

    assert exc_info.value.stage == "staging"
    assert not (workspace.output_root / job_id).exists()
