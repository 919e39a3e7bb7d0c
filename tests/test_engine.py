import pytest

from kuberelease.core.engine import HISTORY_WINDOW, ReleaseManager, deletability
from kuberelease.core.errors import (
    ChartNotFoundError,
    InputError,
    RemoteError,
    StateConflictError,
)
from kuberelease.core.models import (
    Action,
    InstallOptions,
    ManagerConfig,
    Release,
    ReleaseDescriptor,
    ReleaseStatus,
)
from kuberelease.manifest.annotator import ResourceAnnotator
from kuberelease.values.sources import ValuesComposer

from conftest import FakeExecutor, FakeHelm, FakeLoader


def make_manager(helm, recorder, executor=None, loader=None):
    annotator = ResourceAnnotator(executor, sink=recorder) if executor is not None else None
    composer = ValuesComposer(loader or FakeLoader({}), sink=recorder)
    return ReleaseManager(helm, composer=composer, annotator=annotator, sink=recorder)


# --- Deletability state machine ---

@pytest.mark.parametrize("status, deletable, conflict", [
    (ReleaseStatus.DEPLOYED, True, False),
    (ReleaseStatus.FAILED, True, False),
    (ReleaseStatus.DELETED, False, False),
    (ReleaseStatus.PENDING_UPGRADE, False, True),
    (ReleaseStatus.SUPERSEDED, False, True),
    (ReleaseStatus.PENDING_INSTALL, False, True),
    (ReleaseStatus.PENDING_ROLLBACK, False, True),
    (ReleaseStatus.DELETING, False, True),
    (ReleaseStatus.UNKNOWN, False, True),
])
def test_deletability(status, deletable, conflict):
    ok, err = deletability("web", status)
    assert ok is deletable
    assert (err is not None) is conflict
    if conflict:
        assert isinstance(err, StateConflictError)
        assert err.status is status


def test_unrecognized_status_code_is_remote_error():
    with pytest.raises(RemoteError):
        ReleaseStatus.decode(42)
    assert ReleaseStatus.decode(4) is ReleaseStatus.FAILED
    assert ReleaseStatus.decode("pending_upgrade") is ReleaseStatus.PENDING_UPGRADE


# --- Queries ---

def test_get_deployed_release_only_when_deployed(recorder):
    helm = FakeHelm(status=ReleaseStatus.DEPLOYED)
    assert make_manager(helm, recorder).get_deployed_release("web").name == "web"

    helm.status = ReleaseStatus.FAILED
    assert make_manager(helm, recorder).get_deployed_release("web") is None


def test_get_deployed_release_wraps_client_errors(recorder):
    class Broken(FakeHelm):
        def release_content(self, name):
            raise ConnectionError("tiller unreachable")

    with pytest.raises(RemoteError) as exc:
        make_manager(Broken(), recorder).get_deployed_release("web")
    assert isinstance(exc.value.__cause__, ConnectionError)


# --- Delete ---

def test_delete_deployed_purges(helm, recorder):
    make_manager(helm, recorder).delete("web")
    assert helm.called("delete") == [("delete", "web", True)]


def test_delete_already_deleted_is_noop(recorder):
    helm = FakeHelm(status=ReleaseStatus.DELETED)
    assert make_manager(helm, recorder).delete("web") is None
    assert helm.called("delete") == []


def test_delete_mid_transition_conflicts(recorder):
    helm = FakeHelm(status=ReleaseStatus.PENDING_UPGRADE)
    with pytest.raises(StateConflictError):
        make_manager(helm, recorder).delete("web")
    assert helm.called("delete") == []


def test_delete_failure_is_reported(recorder):
    helm = FakeHelm(status=ReleaseStatus.FAILED)
    helm.delete_error = RuntimeError("boom")
    with pytest.raises(RemoteError):
        make_manager(helm, recorder).delete("web")
    assert any("deletion error" in m for m in recorder.messages())


# --- Install preconditions ---

def test_empty_chart_path_rejected_before_remote_call(helm, recorder, descriptor):
    with pytest.raises(InputError) as exc:
        make_manager(helm, recorder).install("", "flux-web", descriptor, Action.INSTALL)
    assert not isinstance(exc.value, ChartNotFoundError)
    assert "flux/HelmRelease/web" in str(exc.value)
    assert helm.calls == []


def test_missing_chart_path_is_not_found(helm, recorder, descriptor):
    with pytest.raises(ChartNotFoundError) as exc:
        make_manager(helm, recorder).install("/nonexistent/path", "flux-web", descriptor,
                                             Action.INSTALL)
    assert exc.value.path == "/nonexistent/path"
    assert helm.calls == []


def test_unstattable_chart_path_is_input_error(helm, recorder, descriptor, tmp_path):
    regular = tmp_path / "file.txt"
    regular.write_text("not a directory")
    chart = str(regular / "chart")

    with pytest.raises(InputError) as exc:
        make_manager(helm, recorder).install(chart, "flux-web", descriptor, Action.INSTALL)

    assert not isinstance(exc.value, ChartNotFoundError)
    assert "error statting" in str(exc.value)
    assert helm.calls == []


def test_unsupported_action_rejected(helm, recorder, descriptor, chart_dir):
    with pytest.raises(InputError) as exc:
        make_manager(helm, recorder).install(chart_dir, "flux-web", descriptor, "ROLLBACK")
    assert "ROLLBACK" in str(exc.value)
    assert helm.calls == []


def test_bad_value_file_rejected_before_remote_call(helm, recorder, chart_dir):
    descriptor = ReleaseDescriptor(name="web", namespace="flux", value_files=("missing.yaml",))
    with pytest.raises(InputError):
        make_manager(helm, recorder).install(chart_dir, "flux-web", descriptor, Action.INSTALL)
    assert helm.calls == []


# --- Install branch ---

def test_install_passes_merged_values_and_options(helm, recorder, chart_dir):
    loader = FakeLoader({"base.yaml": "replicas: 1\nimage: {tag: '1.0'}\n"})
    descriptor = ReleaseDescriptor(name="web", namespace="flux", value_files=("base.yaml",),
                                   values={"replicas": 3}, timeout=60)
    manager = make_manager(helm, recorder, loader=loader)

    rls = manager.install(chart_dir, "flux-web", descriptor, "CREATE",
                          InstallOptions(dry_run=True, reuse_name=True))

    assert rls.name == "flux-web"
    (_, name, kwargs), = helm.called("install")
    assert name == "flux-web"
    assert kwargs["namespace"] == "flux"
    assert kwargs["dry_run"] is True
    assert kwargs["reuse_name"] is True
    assert kwargs["timeout"] == 60
    assert "replicas: 3" in kwargs["values"]
    assert "tag: '1.0'" in kwargs["values"]


def test_install_uses_default_timeout(helm, recorder, descriptor, chart_dir):
    manager = ReleaseManager(helm, config=ManagerConfig(default_timeout=120), sink=recorder)
    manager.install(chart_dir, "flux-web", descriptor, Action.INSTALL, InstallOptions(dry_run=True))
    assert helm.called("install")[0][2]["timeout"] == 120


def test_install_annotates_on_success(helm, recorder, descriptor, chart_dir):
    executor = FakeExecutor()
    make_manager(helm, recorder, executor).install(chart_dir, "flux-web", descriptor,
                                                   Action.INSTALL)
    assert set(executor.batches) == {"flux", "apps"}
    assert executor.batches["flux"][2] == "flux/HelmRelease/web"


def test_dry_run_skips_annotation(helm, recorder, descriptor, chart_dir):
    executor = FakeExecutor()
    make_manager(helm, recorder, executor).install(chart_dir, "flux-web", descriptor,
                                                   Action.INSTALL, InstallOptions(dry_run=True))
    assert executor.batches == {}


def test_annotation_failure_does_not_fail_install(helm, recorder, descriptor, chart_dir):
    executor = FakeExecutor(fail={"flux", "apps"})
    rls = make_manager(helm, recorder, executor).install(chart_dir, "flux-web", descriptor,
                                                         Action.INSTALL)
    assert rls.name == "flux-web"
    assert len([m for m in recorder.messages() if "annotation failed" in m]) == 2


def test_first_failed_install_is_purged(helm, recorder, descriptor, chart_dir):
    helm.install_error = RuntimeError("timed out waiting for the condition")
    helm.history = [Release("flux-web", status=ReleaseStatus.FAILED)]

    with pytest.raises(RemoteError) as exc:
        make_manager(helm, recorder).install(chart_dir, "flux-web", descriptor, Action.INSTALL)

    assert "timed out waiting" in str(exc.value)
    assert helm.called("history") == [("history", "flux-web", 2)]
    assert helm.called("delete") == [("delete", "flux-web", True)]


def test_failed_install_with_longer_history_is_not_purged(helm, recorder, descriptor, chart_dir):
    helm.install_error = RuntimeError("boom")
    helm.history = [Release("flux-web", revision=2, status=ReleaseStatus.FAILED),
                    Release("flux-web", revision=1, status=ReleaseStatus.FAILED)]

    with pytest.raises(RemoteError):
        make_manager(helm, recorder).install(chart_dir, "flux-web", descriptor, Action.INSTALL)
    assert helm.called("history") == [("history", "flux-web", HISTORY_WINDOW)]
    assert helm.called("delete") == []


def test_history_window_is_not_configurable():
    assert HISTORY_WINDOW == 2
    assert not hasattr(ManagerConfig(), "history_window")


def test_failed_install_with_deployed_history_is_not_purged(helm, recorder, descriptor, chart_dir):
    helm.install_error = RuntimeError("boom")
    helm.history = [Release("flux-web", status=ReleaseStatus.DEPLOYED)]

    with pytest.raises(RemoteError):
        make_manager(helm, recorder).install(chart_dir, "flux-web", descriptor, Action.INSTALL)
    assert helm.called("delete") == []


def test_purge_failure_keeps_original_error(helm, recorder, descriptor, chart_dir):
    helm.install_error = RuntimeError("original")
    helm.delete_error = RuntimeError("purge failed")
    helm.history = [Release("flux-web", status=ReleaseStatus.FAILED)]

    with pytest.raises(RemoteError) as exc:
        make_manager(helm, recorder).install(chart_dir, "flux-web", descriptor, Action.INSTALL)
    assert "original" in str(exc.value)
    assert any("purge failed" in m for m in recorder.messages())


def test_history_failure_keeps_original_error(helm, recorder, descriptor, chart_dir):
    helm.install_error = RuntimeError("original")
    helm.history_error = RuntimeError("history unavailable")

    with pytest.raises(RemoteError) as exc:
        make_manager(helm, recorder).install(chart_dir, "flux-web", descriptor, Action.INSTALL)
    assert "original" in str(exc.value)
    assert helm.called("delete") == []


# --- Upgrade branch ---

def test_upgrade_passes_flags(helm, recorder, chart_dir):
    descriptor = ReleaseDescriptor(name="web", namespace="flux", reset_values=True,
                                   force_upgrade=True)
    executor = FakeExecutor()
    make_manager(helm, recorder, executor).install(chart_dir, "flux-web", descriptor,
                                                   Action.UPGRADE)

    (_, name, kwargs), = helm.called("update")
    assert name == "flux-web"
    assert kwargs["reset_values"] is True
    assert kwargs["force"] is True
    assert kwargs["timeout"] == 300
    assert executor.batches


def test_failed_upgrade_never_purges(helm, recorder, descriptor, chart_dir):
    helm.update_error = RuntimeError("boom")
    helm.history = [Release("flux-web", status=ReleaseStatus.FAILED)]

    with pytest.raises(RemoteError):
        make_manager(helm, recorder).install(chart_dir, "flux-web", descriptor, Action.UPGRADE)
    assert helm.called("history") == []
    assert helm.called("delete") == []


def test_config_builds_default_annotator(helm, recorder, descriptor, chart_dir):
    executor = FakeExecutor()
    config = ManagerConfig(annotation_key="example.com/owner", annotation_timeout=3)
    manager = ReleaseManager(helm, config=config, sink=recorder, executor=executor,
                             loader=FakeLoader({}))

    manager.install(chart_dir, "flux-web", descriptor, Action.INSTALL)

    assert manager.annotator.timeout == 3
    assert executor.batches["apps"][1] == "example.com/owner"


def test_no_executor_means_no_annotation(helm, recorder, descriptor, chart_dir):
    manager = ReleaseManager(helm, sink=recorder)
    assert manager.annotator is None
    assert manager.install(chart_dir, "flux-web", descriptor, Action.INSTALL).name == "flux-web"
