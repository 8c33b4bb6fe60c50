"""
Test full organize runs against the scripted remote directory.
"""

import dataclasses
import threading

import pytest

from camsort.classifiers import DeviceClassifier, ProcessedLog
from camsort.errors import DuplicateDestinationError, TransportError
from camsort.events import BatchSubmitted, EventBus, FolderCreated, GroupFailed, RunFinished
from camsort.history import RunHistory
from camsort.models import Immediate, Queued
from camsort.organizer import Organizer

from conftest import file_entry, folder_entry

ROOT = "/Camera Uploads"


@pytest.fixture
def dated_tree(fake_dropbox):
    fake_dropbox.tree = {
        ROOT: [
            file_entry(f"{ROOT}/2021-05-01 01.00.00.jpg"),
            file_entry(f"{ROOT}/2021-05-02 02.00.00.jpg"),
            file_entry(f"{ROOT}/2021-06-01 01.00.00.jpg"),
        ]
    }
    return fake_dropbox


@pytest.fixture
def recorded_events():
    events = EventBus()
    seen = []
    events.subscribe(seen.append)
    return events, seen


class TestOrganizeByDate:
    """Test month grouping runs end to end."""

    def test_immediate_moves(self, dated_tree, settings):
        """Small batches finish synchronously and the tracker is never polled."""
        summary = Organizer(dated_tree, settings).organize_by_date()

        assert summary.folders_created == 2
        assert summary.files_moved == 3
        assert summary.jobs_submitted == 0
        assert summary.ok
        assert dated_tree.count("check_move_batch") == 0

    def test_folder_created_before_its_batch(self, dated_tree, settings):
        Organizer(dated_tree, settings).organize_by_date()

        mutations = [call[:2] if call[0] == "create_folder" else (call[0], call[1][0])
                     for call in dated_tree.calls if call[0] != "list_folder"]
        assert mutations == [
            ("create_folder", f"{ROOT}/2021-05"),
            ("submit_move_batch", f"{ROOT}/2021-05/2021-05-01 01.00.00.jpg"),
            ("create_folder", f"{ROOT}/2021-06"),
            ("submit_move_batch", f"{ROOT}/2021-06/2021-06-01 01.00.00.jpg"),
        ]

    def test_queued_jobs_polled_to_completion(self, dated_tree, settings):
        """One job completes and one fails; the run still reaches its report."""
        dated_tree.submit_results = [Queued("job-1"), Queued("job-2")]
        dated_tree.job_scripts = {
            "job-1": ["in_progress", "complete"],
            "job-2": ["in_progress", "failed"],
        }

        summary = Organizer(dated_tree, settings).organize_by_date()

        assert summary.jobs_submitted == 2
        assert summary.jobs_failed == ("job-2",)
        assert summary.files_moved == 2
        assert dated_tree.count("check_move_batch") == 4
        assert not summary.ok

    def test_mixed_immediate_and_queued(self, dated_tree, settings):
        dated_tree.submit_results = [Queued("job-1"), Immediate(moved_count=1)]

        summary = Organizer(dated_tree, settings).organize_by_date()

        assert summary.jobs_submitted == 1
        assert summary.files_moved == 3
        assert dated_tree.count("check_move_batch") == 1

    def test_existing_folders_not_recreated(self, dated_tree, settings):
        dated_tree.tree[ROOT].append(folder_entry(f"{ROOT}/2021-05"))

        summary = Organizer(dated_tree, settings).organize_by_date()

        created = [call[1] for call in dated_tree.calls if call[0] == "create_folder"]
        assert created == [f"{ROOT}/2021-06"]
        assert summary.folders_created == 1

    def test_folder_appearing_concurrently_is_not_an_error(self, dated_tree, settings,
                                                          recorded_events):
        events, seen = recorded_events
        dated_tree.existing_folders.add(f"{ROOT}/2021-05".lower())

        summary = Organizer(dated_tree, settings, events=events).organize_by_date()

        assert summary.folders_created == 1
        assert summary.files_moved == 3
        assert FolderCreated(path=f"{ROOT}/2021-05", already_existed=True) in seen

    def test_group_transport_error_does_not_stop_other_groups(self, dated_tree, settings,
                                                              recorded_events):
        events, seen = recorded_events
        dated_tree.submit_results = [TransportError("reset", endpoint="move_batch_v2"),
                                     Immediate(moved_count=1)]

        summary = Organizer(dated_tree, settings, events=events).organize_by_date()

        assert summary.files_moved == 1
        assert len(summary.errors) == 1
        assert summary.errors[0][0] == f"{ROOT}/2021-05"
        assert any(isinstance(event, GroupFailed) for event in seen)
        assert isinstance(seen[-1], RunFinished)

    def test_folder_creation_failure_skips_group(self, dated_tree, settings):
        dated_tree.create_errors = {f"{ROOT}/2021-05": TransportError("denied", status=403)}

        summary = Organizer(dated_tree, settings).organize_by_date()

        submitted = [call[1][0] for call in dated_tree.calls if call[0] == "submit_move_batch"]
        assert submitted == [f"{ROOT}/2021-06/2021-06-01 01.00.00.jpg"]
        assert summary.files_moved == 1
        assert len(summary.errors) == 1

    def test_empty_directory(self, fake_dropbox, settings, recorded_events):
        events, seen = recorded_events
        fake_dropbox.tree = {ROOT: []}

        summary = Organizer(fake_dropbox, settings, events=events).organize_by_date()

        assert summary.ok
        assert [call[0] for call in fake_dropbox.calls] == ["list_folder"]
        assert seen == [RunFinished(summary=summary)]

    def test_duplicate_destinations_abort_before_mutation(self, fake_dropbox, settings):
        fake_dropbox.tree = {ROOT: [
            file_entry(f"{ROOT}/a/2021-05-01 01.00.00.jpg"),
            file_entry(f"{ROOT}/b/2021-05-01 01.00.00.jpg"),
        ]}

        with pytest.raises(DuplicateDestinationError):
            Organizer(fake_dropbox, settings).organize_by_date()

        assert [call[0] for call in fake_dropbox.calls] == ["list_folder"]

    def test_listing_failure_aborts(self, fake_dropbox, settings):
        with pytest.raises(TransportError):
            Organizer(fake_dropbox, settings).organize_by_date("/Missing")

    def test_cancelled_before_submission(self, dated_tree, settings):
        cancel = threading.Event()
        cancel.set()

        summary = Organizer(dated_tree, settings, cancel_event=cancel).organize_by_date()

        assert summary.cancelled
        assert dated_tree.count("submit_move_batch") == 0

    def test_jobs_left_pending_are_reported(self, dated_tree, settings):
        dated_tree.submit_results = [Queued("job-1"), Queued("job-2")]
        dated_tree.job_scripts = {"job-1": ["in_progress"], "job-2": ["complete"]}
        bounded = dataclasses.replace(settings, max_poll_rounds=2)

        summary = Organizer(dated_tree, bounded).organize_by_date()

        assert summary.jobs_unresolved == (("job-1", "timed_out"),)
        assert summary.jobs_failed == ()
        assert not summary.ok

    def test_events_emitted_in_order(self, dated_tree, settings, recorded_events):
        events, seen = recorded_events
        dated_tree.submit_results = [Queued("job-1")]

        Organizer(dated_tree, settings, events=events).organize_by_date()

        kinds = [type(event).__name__ for event in seen]
        assert kinds == ["FolderCreated", "BatchSubmitted", "FolderCreated", "BatchSubmitted",
                         "JobPolled", "RunFinished"]
        assert seen[1] == BatchSubmitted(group="2021-05", destination=f"{ROOT}/2021-05",
                                         entry_count=2, job_id="job-1")

    def test_run_history_written(self, dated_tree, settings, tmp_path):
        history = RunHistory(tmp_path / "history")

        Organizer(dated_tree, settings, history=history).organize_by_date()

        record = (tmp_path / "history" / "runs.log").read_text()
        assert "SUCCESS" in record
        assert "Mode: dates" in record
        assert "Moved: 3" in record


class TestOrganizeByDevice:
    """Test routing month folders by capture device."""

    @pytest.fixture
    def device_tree(self, fake_dropbox):
        may, june = f"{ROOT}/2021-05", f"{ROOT}/2021-06"
        fake_dropbox.tree = {
            ROOT: [folder_entry(june), folder_entry(may)],
            may: [file_entry(f"{may}/a.jpg"), folder_entry(f"{may}/Other")],
            june: [file_entry(f"{june}/b.jpg"), file_entry(f"{june}/c.jpg"),
                   file_entry(f"{june}/d.mov")],
        }
        fake_dropbox.downloads = {
            f"{may}/a.jpg": b"Canon",
            f"{june}/b.jpg": b"iPhone 5c",
            f"{june}/c.jpg": b"NIKON D750",
        }
        return fake_dropbox

    def classifier(self, client, tmp_path):
        return DeviceClassifier(client, processed_log=ProcessedLog(tmp_path / "processed"),
                                model_reader=lambda path: path.read_bytes().decode())

    def test_routes_other_cameras(self, device_tree, settings, tmp_path):
        summary = Organizer(device_tree, settings).organize_by_device(
            classifier=self.classifier(device_tree, tmp_path))

        submitted = [call[1] for call in device_tree.calls if call[0] == "submit_move_batch"]
        assert submitted == [[f"{ROOT}/2021-05/Other/a.jpg"], [f"{ROOT}/2021-06/Other/c.jpg"]]
        created = [call[1] for call in device_tree.calls if call[0] == "create_folder"]
        assert created == [f"{ROOT}/2021-06/Other"]
        assert summary.files_moved == 2
        assert summary.folders_created == 1

    def test_second_run_skips_processed_files(self, device_tree, settings, tmp_path):
        organizer = Organizer(device_tree, settings)
        organizer.organize_by_device(classifier=self.classifier(device_tree, tmp_path))
        downloads = device_tree.count("download")

        summary = organizer.organize_by_device(classifier=self.classifier(device_tree, tmp_path))

        assert device_tree.count("download") == downloads
        assert summary.files_moved == 0

    def test_latest_only(self, device_tree, settings, tmp_path):
        Organizer(device_tree, settings).organize_by_device(
            latest_only=True, classifier=self.classifier(device_tree, tmp_path))

        listed = [call[1] for call in device_tree.calls if call[0] == "list_folder"]
        assert listed == [ROOT, f"{ROOT}/2021-06"]

    def test_plan_only_makes_no_changes(self, device_tree, settings, tmp_path):
        plans = Organizer(device_tree, settings).plan_by_device(
            classifier=self.classifier(device_tree, tmp_path))

        assert [plan.destination_root for plan in plans] == [f"{ROOT}/2021-05", f"{ROOT}/2021-06"]
        assert plans[0].folders_to_create == set()
        assert plans[1].folders_to_create == {"Other"}
        assert device_tree.count("submit_move_batch") == 0
        assert device_tree.count("create_folder") == 0

    def test_unreadable_file_does_not_abort_run(self, device_tree, settings, tmp_path):
        """A file that vanished after listing is reported and the other months still move."""
        may = f"{ROOT}/2021-05"
        device_tree.tree[may].append(file_entry(f"{may}/gone.jpg"))

        summary = Organizer(device_tree, settings).organize_by_device(
            classifier=self.classifier(device_tree, tmp_path))

        submitted = [call[1] for call in device_tree.calls if call[0] == "submit_move_batch"]
        assert submitted == [[f"{may}/Other/a.jpg"], [f"{ROOT}/2021-06/Other/c.jpg"]]
        assert summary.files_moved == 2
        assert [scope for scope, _ in summary.errors] == [f"{may}/gone.jpg"]
        assert not summary.ok
        assert f"{may}/gone.jpg" not in ProcessedLog(tmp_path / "processed")

    def test_moved_files_recorded_after_moving(self, device_tree, settings, tmp_path):
        summary = Organizer(device_tree, settings).organize_by_device(
            classifier=self.classifier(device_tree, tmp_path))

        log = ProcessedLog(tmp_path / "processed")
        assert summary.ok
        assert f"{ROOT}/2021-05/a.jpg" in log
        assert f"{ROOT}/2021-06/b.jpg" in log
        assert f"{ROOT}/2021-06/c.jpg" in log

    def test_failed_job_leaves_files_unrecorded(self, device_tree, settings, tmp_path):
        device_tree.submit_results = [Queued("job-1")]
        device_tree.job_scripts = {"job-1": ["failed"]}

        summary = Organizer(device_tree, settings).organize_by_device(
            classifier=self.classifier(device_tree, tmp_path))

        log = ProcessedLog(tmp_path / "processed")
        assert summary.jobs_failed == ("job-1",)
        assert f"{ROOT}/2021-05/a.jpg" not in log
        assert f"{ROOT}/2021-06/c.jpg" in log

    def test_completed_job_records_files(self, device_tree, settings, tmp_path):
        device_tree.submit_results = [Queued("job-1")]

        Organizer(device_tree, settings).organize_by_device(
            classifier=self.classifier(device_tree, tmp_path))

        assert f"{ROOT}/2021-05/a.jpg" in ProcessedLog(tmp_path / "processed")

    def test_cancel_during_classification(self, device_tree, settings, tmp_path):
        """Cancelling stops further downloads and records nothing that was not moved."""
        cancel = threading.Event()

        def reader(path):
            cancel.set()
            return path.read_bytes().decode()

        classifier = DeviceClassifier(device_tree, processed_log=ProcessedLog(tmp_path / "processed"),
                                      model_reader=reader)

        summary = Organizer(device_tree, settings, cancel_event=cancel).organize_by_device(
            classifier=classifier)

        assert summary.cancelled
        assert device_tree.count("download") == 1
        assert device_tree.count("submit_move_batch") == 0
        assert len(ProcessedLog(tmp_path / "processed")) == 0
        listed = [call[1] for call in device_tree.calls if call[0] == "list_folder"]
        assert listed == [ROOT, f"{ROOT}/2021-05"]
