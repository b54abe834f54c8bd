from unittest.mock import MagicMock, patch

import pytest

from apps.api.core.config import Settings
from apps.worker import main


@pytest.fixture
def settings():
    return Settings(
        SUPABASE_URL="https://test.supabase.co",
        SUPABASE_ANON_KEY="test-anon-key",
        SUPABASE_SERVICE_KEY="service-key",
        IMPORT_CHUNK_SIZE=100,
        WORKER_POLL_INTERVAL_SECONDS=0.5,
    )


def test_empty_queue(settings):
    store = MagicMock()
    store.next_queued_job.return_value = None

    assert main.process_next_job(store, settings) is False


@patch("apps.worker.main.build_job_controller")
def test_queued_job_runs_with_configured_chunk_size(mock_build, settings):
    store = MagicMock()
    row = {"id": "job-1", "channel": "shopee"}
    store.next_queued_job.return_value = row

    assert main.process_next_job(store, settings) is True
    mock_build.assert_called_once_with(store, chunk_size=100)
    mock_build.return_value.run_queued.assert_called_once_with(row)


def test_sweep_uses_ttl(settings):
    store = MagicMock()
    store.fail_stale_jobs.return_value = [{"id": "job-9"}]

    assert main.sweep_stale_jobs(store, settings) == 1
    cutoff, fields = store.fail_stale_jobs.call_args.args
    assert fields["status"] == "failed"
    assert "1800s" in fields["error_message"]


@patch("apps.worker.main.time.sleep")
@patch("apps.worker.main.process_next_job")
def test_loop_survives_errors(mock_process, mock_sleep, settings):
    store = MagicMock()
    store.fail_stale_jobs.return_value = []
    mock_process.side_effect = [RuntimeError("db down"), True, False]

    main.run_forever(store, settings, max_iterations=3)

    assert mock_process.call_count == 3
    assert mock_sleep.call_count == 2
    mock_sleep.assert_called_with(0.5)


@patch("apps.worker.main.get_service_client")
@patch("apps.worker.main.run_forever")
def test_main_stops_without_service_key(mock_run, mock_client, settings, monkeypatch):
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    mock_client.side_effect = RuntimeError("SUPABASE_SERVICE_KEY is not configured")

    main.main()

    mock_run.assert_not_called()
