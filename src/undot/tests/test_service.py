"""
操作历史服务测试：记录 -> 安全检查 -> 撤销 -> 标记
"""
import json
from unittest.mock import patch

import pytest

from undot.core import (
    AlreadyUndoneError,
    ExecutionFailureError,
    HistoryStoreError,
    NotFoundError,
    NotUndoableError,
    OperationHistory,
    UnsafeStateError,
)
from undot.core.models import (
    BackupInfo,
    BatchCommit,
    BatchUndoData,
    ConfigUndoData,
    OperationRequest,
    OperationStatus,
    OperationType,
)
from undot.tests.conftest import commit_request


def _migrate_request(workdir, branch="undot-backup-x"):
    return OperationRequest(
        type=OperationType.MIGRATE,
        command="migrate",
        description="migrate history",
        backup_info=BackupInfo(backup_branch=branch),
        working_directory=str(workdir),
    )


class TestUndo:
    """测试单个撤销"""

    def test_commit_scenario(self, history, repo, workdir):
        operation_id = history.record(commit_request(workdir, "abc123", "def456"))

        outcome = history.undo(operation_id)

        assert repo.head == "def456"
        assert outcome.undo_result['resetTo'] == "def456"
        record = history.get_operation(operation_id)
        assert record.status == OperationStatus.UNDONE
        assert record.undone_at is not None
        assert record.undo_result['removedCommit'] == "abc123"

    def test_config_scenario_removes_key(self, history, config_store, workdir):
        config_store.data['git.defaultTime'] = '09:00'
        operation_id = history.record(OperationRequest(
            type=OperationType.CONFIG,
            command="config set",
            description="set default time",
            undo_data=ConfigUndoData(key='git.defaultTime', previous_value=None),
            working_directory=str(workdir),
        ))

        history.undo(operation_id)

        assert 'git.defaultTime' not in config_store.data

    def test_not_found(self, history):
        with pytest.raises(NotFoundError):
            history.undo('op_missing')

    def test_not_undoable(self, history, repo, workdir):
        operation_id = history.record(commit_request(workdir, "abc123", "def456", undoable=False))
        with pytest.raises(NotUndoableError):
            history.undo(operation_id)
        assert repo.resets == []

    def test_already_undone_leaves_store_unchanged(self, history, settings, workdir):
        operation_id = history.record(commit_request(workdir, "abc123", "def456"))
        history.undo(operation_id)
        before = settings.history_file.read_text(encoding='utf-8')

        for _ in range(2):
            with pytest.raises(AlreadyUndoneError):
                history.undo(operation_id, force=True)

        assert settings.history_file.read_text(encoding='utf-8') == before

    def test_unsafe_when_head_advanced(self, history, repo, workdir):
        operation_id = history.record(commit_request(workdir, "abc123", "def456"))
        repo.head = "newer"

        with pytest.raises(UnsafeStateError) as exc_info:
            history.undo(operation_id)

        assert "新的提交" in exc_info.value.reason
        assert repo.resets == []
        assert history.get_operation(operation_id).status == OperationStatus.COMPLETED

    @pytest.mark.parametrize("scenario", ["dirty", "head_advanced", "backup_missing"])
    def test_force_overrides_safety(self, history, repo, workdir, scenario):
        if scenario == "backup_missing":
            repo.refs.append("undot-backup-x")
            operation_id = history.record(_migrate_request(workdir))
            repo.refs.remove("undot-backup-x")
            with pytest.raises(UnsafeStateError):
                history.undo(operation_id)
            # 备份确实不存在，强制执行时还原步骤本身失败
            with pytest.raises(ExecutionFailureError):
                history.undo(operation_id, force=True)
            assert history.get_operation(operation_id).status == OperationStatus.COMPLETED
            return

        operation_id = history.record(commit_request(workdir, "abc123", "def456"))
        if scenario == "dirty":
            repo.clean = False
        else:
            repo.head = "newer"

        with pytest.raises(UnsafeStateError):
            history.undo(operation_id)

        history.undo(operation_id, force=True)
        assert repo.resets == [("def456", True)]
        assert history.get_operation(operation_id).is_undone

    @pytest.mark.parametrize("head", ["abc123", "newer"])
    def test_dry_run_never_mutates(self, history, repo, settings, workdir, head):
        operation_id = history.record(commit_request(workdir, "abc123", "def456"))
        repo.head = head
        before = settings.history_file.read_text(encoding='utf-8')

        outcome = history.undo(operation_id, force=True, dry_run=True)

        assert outcome.dry_run
        assert outcome.safety.safe == (head == "abc123")
        assert repo.resets == []
        assert settings.history_file.read_text(encoding='utf-8') == before
        record = history.get_operation(operation_id)
        assert record.status == OperationStatus.COMPLETED
        assert record.undone_at is None

    def test_dry_run_migrate_with_missing_backup(self, history, repo, settings, workdir):
        repo.refs.append("undot-backup-x")
        operation_id = history.record(_migrate_request(workdir))
        repo.refs.remove("undot-backup-x")
        refs_before = list(repo.refs)
        before = settings.history_file.read_text(encoding='utf-8')

        outcome = history.undo(operation_id, force=True, dry_run=True)

        assert outcome.dry_run
        assert not outcome.safety.safe
        assert repo.restored == []
        assert repo.resets == []
        assert repo.refs == refs_before
        assert settings.history_file.read_text(encoding='utf-8') == before

    def test_dry_run_config_leaves_store_unchanged(self, history, config_store, settings, workdir):
        config_store.data['git.defaultTime'] = '09:00'
        operation_id = history.record(OperationRequest(
            type=OperationType.CONFIG,
            command="config set",
            description="set default time",
            undo_data=ConfigUndoData(key='git.defaultTime', previous_value='08:00'),
            working_directory=str(workdir),
        ))
        before = settings.history_file.read_text(encoding='utf-8')

        outcome = history.undo(operation_id, dry_run=True)

        assert outcome.dry_run
        assert outcome.safety.safe
        assert config_store.data == {'git.defaultTime': '09:00'}
        assert settings.history_file.read_text(encoding='utf-8') == before
        assert history.get_operation(operation_id).status == OperationStatus.COMPLETED

    def test_record_without_working_directory_is_refused(
        self, history, repo, settings, workdir, tmp_path, monkeypatch
    ):
        operation_id = history.record(commit_request(workdir, "abc123", "def456"))
        entries = json.loads(settings.history_file.read_text(encoding='utf-8'))
        del entries[0]['metadata']
        settings.history_file.write_text(json.dumps(entries), encoding='utf-8')
        other = tmp_path / "elsewhere"
        other.mkdir()
        monkeypatch.chdir(other)

        with pytest.raises(UnsafeStateError) as exc_info:
            history.undo(operation_id)
        assert "工作目录" in exc_info.value.reason

        with pytest.raises(ExecutionFailureError):
            history.undo(operation_id, force=True)

        assert repo.resets == []
        assert history.get_operation(operation_id).status == OperationStatus.COMPLETED

    def test_execution_failure_keeps_record_completed(self, history, repo, workdir):
        operation_id = history.record(commit_request(workdir, "abc123", "def456"))
        repo.fail_reset = True

        with pytest.raises(ExecutionFailureError):
            history.undo(operation_id)

        assert history.get_operation(operation_id).status == OperationStatus.COMPLETED

        repo.fail_reset = False
        history.undo(operation_id)
        assert history.get_operation(operation_id).is_undone


class TestUndoLast:
    """测试撤销最近 N 个操作"""

    def test_undoes_in_newest_first_order(self, history, repo, workdir):
        history.record(commit_request(workdir, "c1", "c0"))
        history.record(commit_request(workdir, "c2", "c1"))
        repo.head = "c2"

        report = history.undo_last(2)

        assert report.success
        assert [r[0] for r in repo.resets] == ["c1", "c0"]
        assert len(report.successful) == 2

    def test_stops_at_first_failure(self, history, repo, workdir):
        first = history.record(commit_request(workdir, "c1", "c0"))
        second = history.record(_migrate_request(workdir, "undot-backup-gone"))
        third = history.record(commit_request(workdir, "c3", "c1"))
        repo.head = "c3"

        report = history.undo_last(3)

        assert not report.success
        assert [a.operation_id for a in report.successful] == [third]
        assert len(report.attempts) == 2
        failure = report.attempts[1]
        assert failure.operation_id == second
        assert failure.error_type == "UnsafeStateError"
        assert history.get_operation(second).status == OperationStatus.COMPLETED
        assert history.get_operation(first).status == OperationStatus.COMPLETED

    def test_force_continues_after_failure(self, history, repo, workdir):
        first = history.record(commit_request(workdir, "c1", "c0"))
        history.record(_migrate_request(workdir, "undot-backup-gone"))
        history.record(commit_request(workdir, "c3", "c1"))
        repo.head = "c3"

        report = history.undo_last(3, force=True)

        assert len(report.attempts) == 3
        assert len(report.successful) == 2
        assert report.failed[0].error_type == "ExecutionFailureError"
        assert history.get_operation(first).is_undone
        assert repo.head == "c0"

    def test_skips_already_undone(self, history, repo, workdir):
        first = history.record(commit_request(workdir, "c1", "c0"))
        second = history.record(commit_request(workdir, "c2", "c1"))
        repo.head = "c2"
        history.undo(second)

        report = history.undo_last(1)

        assert [a.operation_id for a in report.attempts] == [first]

    def test_not_enough_operations(self, history, workdir):
        with pytest.raises(NotFoundError):
            history.undo_last(1)
        history.record(commit_request(workdir, "c1", "c0"))
        with pytest.raises(NotFoundError):
            history.undo_last(2)

    def test_invalid_count(self, history):
        with pytest.raises(ValueError):
            history.undo_last(0)

    def test_dry_run(self, history, repo, workdir):
        history.record(commit_request(workdir, "abc123", "def456"))

        report = history.undo_last(1, dry_run=True)

        assert report.attempts[0].outcome.dry_run
        assert repo.resets == []

    def test_dry_run_follows_chain_of_commits(self, history, repo, settings, workdir):
        history.record(commit_request(workdir, "c1", "c0"))
        history.record(commit_request(workdir, "c2", "c1"))
        repo.head = "c2"
        before = settings.history_file.read_text(encoding='utf-8')

        report = history.undo_last(2, dry_run=True)

        assert report.success
        assert len(report.successful) == 2
        assert all(a.outcome.safety.safe for a in report.attempts)
        assert repo.resets == []
        assert repo.head == "c2"
        assert settings.history_file.read_text(encoding='utf-8') == before

    def test_dry_run_follows_batch_then_commit(self, history, repo, workdir):
        history.record(commit_request(workdir, "c1", "c0"))
        history.record(OperationRequest(
            type=OperationType.BATCH,
            command="batch",
            description="batch commits",
            undo_data=BatchUndoData(created_commits=[
                BatchCommit(hash="b1", parent_hash="c1"),
                BatchCommit(hash="b2", parent_hash="b1"),
            ]),
            working_directory=str(workdir),
        ))
        repo.head = "b2"

        report = history.undo_last(2, dry_run=True)

        assert report.success
        assert repo.resets == []

    def test_dry_run_chain_detects_gap(self, history, repo, workdir):
        history.record(commit_request(workdir, "c1", "c0"))
        second = history.record(commit_request(workdir, "c3", "c2"))
        repo.head = "c3"

        report = history.undo_last(2, dry_run=True)

        assert not report.success
        assert [a.operation_id for a in report.successful] == [second]
        assert report.failed[0].error_type == "UnsafeStateError"


class TestRecordAndMaintenance:
    """测试记录与维护接口"""

    def test_record_failure_does_not_raise(self, history, workdir):
        with patch.object(history.recorder, 'record', side_effect=HistoryStoreError("disk full")):
            assert history.record(commit_request(workdir, "a", "b")) is None

    def test_invalid_request_does_not_raise(self, history, workdir):
        mismatched = OperationRequest(
            type=OperationType.COMMIT,
            command="commit",
            description="wrong payload",
            undo_data=ConfigUndoData(key='a', previous_value=None),
            working_directory=str(workdir),
        )
        unknown = OperationRequest(
            type="rename", command="rename", description="unknown type",
            working_directory=str(workdir),
        )

        assert history.record(mismatched) is None
        assert history.record(unknown) is None
        assert history.get_history(limit=None) == []

    def test_eviction_beyond_max(self, settings, repo_factory, config_store, workdir, tmp_path):
        settings.max_entries = 2
        history = OperationHistory.from_settings(settings, repo_factory, config_store)
        paths = []
        for i in range(3):
            path = tmp_path / f"b{i}"
            path.mkdir()
            paths.append(path)
            history.record(commit_request(
                workdir, f"c{i}", "p", backup_info=BackupInfo(backup_path=str(path))
            ))

        assert len(history.get_history(limit=None)) == 2
        assert not paths[0].exists()
        assert paths[1].exists() and paths[2].exists()

    def test_export_json(self, history, workdir, tmp_path):
        history.record(commit_request(workdir, "a", "b"))
        output = tmp_path / "out" / "history.json"

        assert history.export_history(output, "json") == 1

        data = json.loads(output.read_text(encoding='utf-8'))
        assert data['totalEntries'] == 1
        assert data['entries'][0]['type'] == 'commit'

    def test_clear_history(self, history, workdir):
        history.record(commit_request(workdir, "a", "b"))
        result = history.clear_history()
        assert result.removed_count == 1
        assert history.get_history() == []
