"""Tests for startup recovery of undelivered batch files."""

import os
import time

from syslog_shipper.config import BatchConfig
from syslog_shipper.models import RecordFormat
from syslog_shipper.recovery import find_pending_batches, recover_jobs


def _write(path, text, mtime=None):
    path.write_text(text)
    if mtime is not None:
        os.utime(path, (mtime, mtime))


class TestFindPendingBatches:
    def test_missing_dir(self, tmp_path):
        assert find_pending_batches(str(tmp_path / "absent")) == []

    def test_oldest_first_and_filters(self, tmp_path):
        now = time.time()
        _write(tmp_path / "new.txt", "x\n", now)
        _write(tmp_path / "old.json", "{}\n", now - 100)
        _write(tmp_path / "notes.md", "ignore me\n", now - 200)
        (tmp_path / "failed").mkdir()
        _write(tmp_path / "failed" / "dead.txt", "x\n", now - 300)

        paths = find_pending_batches(str(tmp_path))
        assert [os.path.basename(p) for p in paths] == ["old.json", "new.txt"]


class TestRecoverJobs:
    def test_builds_jobs_from_files(self, tmp_path):
        _write(tmp_path / "a.txt", "one\ntwo\nthree\n")
        config = BatchConfig(batch_dir=str(tmp_path), table="t", mapping="m")

        jobs = recover_jobs(config)

        assert len(jobs) == 1
        job = jobs[0]
        assert job.file_path == str(tmp_path / "a.txt")
        assert job.event_count == 3
        assert job.table == "t"
        assert job.mapping == "m"
        assert job.data_format is RecordFormat.TEXT

    def test_json_suffix_sets_format(self, tmp_path):
        _write(tmp_path / "a.json", '{"payload": "x"}\n')
        jobs = recover_jobs(BatchConfig(batch_dir=str(tmp_path)))
        assert jobs[0].data_format is RecordFormat.JSON

    def test_empty_files_removed(self, tmp_path):
        _write(tmp_path / "empty.txt", "")
        assert recover_jobs(BatchConfig(batch_dir=str(tmp_path))) == []
        assert not (tmp_path / "empty.txt").exists()

    def test_undeletable_empty_file_does_not_abort(self, tmp_path, monkeypatch):
        now = time.time()
        _write(tmp_path / "empty.txt", "", now - 10)
        _write(tmp_path / "full.txt", "kept\n", now)

        def failing_remove(path):
            raise PermissionError(f"read-only: {path}")

        monkeypatch.setattr(os, "remove", failing_remove)
        jobs = recover_jobs(BatchConfig(batch_dir=str(tmp_path)))

        assert [os.path.basename(job.file_path) for job in jobs] == ["full.txt"]
        assert (tmp_path / "empty.txt").exists()
