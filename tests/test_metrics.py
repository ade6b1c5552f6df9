import threading

import pytest

from slowlab.metrics import BUCKETS, MetricsRecorder, TimingObservation

INF = float('inf')


def test_small_observation_fills_every_bucket_once(recorder):
    recorder.observe(TimingObservation('GET', '/other', 200, 2.5))
    other_before = recorder.bucket_counts('GET', '/other', 200)

    recorder.observe(TimingObservation('GET', '/slow', 200, 0.05))

    counts = recorder.bucket_counts('GET', '/slow', 200)
    assert set(counts) == set(BUCKETS) | {INF}
    assert all(count == 1 for count in counts.values())
    assert recorder.bucket_counts('GET', '/other', 200) == other_before
    assert recorder.bucket_counts('GET', '/slow', 500)[INF] == 0


def test_cumulative_bucket_counts(recorder):
    for elapsed in (0.05, 0.3, 4.0):
        recorder.observe(TimingObservation('GET', '/slow', 200, elapsed))

    counts = recorder.bucket_counts('GET', '/slow', 200)
    assert counts[0.1] == 1
    assert counts[0.5] == 2
    assert counts[1] == 2
    assert counts[3] == 2
    assert counts[5] == 3
    assert counts[10] == 3
    assert counts[INF] == 3
    assert recorder.observation_count('GET', '/slow', 200) == 3


def test_bucket_bound_is_inclusive(recorder):
    recorder.observe(TimingObservation('GET', '/slow', 200, 0.5))
    counts = recorder.bucket_counts('GET', '/slow', 200)
    assert counts[0.1] == 0
    assert counts[0.5] == 1


def test_label_tuples_are_kept_apart(recorder):
    recorder.observe(TimingObservation('GET', '/slow', 200, 1.5))
    recorder.observe(TimingObservation('GET', '/slow', 500, 1.5))
    recorder.observe(TimingObservation('HEAD', '/slow', 200, 1.5))

    assert recorder.observation_count('GET', '/slow', 200) == 1
    assert recorder.observation_count('GET', '/slow', 500) == 1
    assert recorder.observation_count('HEAD', '/slow', 200) == 1


def test_negative_elapsed_is_rejected(recorder):
    with pytest.raises(ValueError):
        recorder.observe(TimingObservation('GET', '/', 200, -0.1))
    assert recorder.observation_count('GET', '/', 200) == 0


def test_snapshot_renders_exposition_text(recorder):
    recorder.observe(TimingObservation('GET', '/slow', 200, 0.3))
    text = recorder.snapshot()

    assert '# TYPE http_request_duration_seconds histogram' in text
    bucket_lines = [
        line for line in text.splitlines()
        if line.startswith('http_request_duration_seconds_bucket{') and 'le="0.5"' in line
    ]
    assert len(bucket_lines) == 1
    assert 'route="/slow"' in bucket_lines[0]
    assert bucket_lines[0].endswith(' 1.0')
    assert 'http_requests_total{' in text
    assert recorder.content_type.startswith('text/plain')


def test_snapshot_is_stable_without_new_observations(recorder):
    recorder.observe(TimingObservation('GET', '/slow', 200, 0.3))
    recorder.observe(TimingObservation('GET', '/', 200, 0.01))

    assert recorder.snapshot() == recorder.snapshot()


def test_default_collectors_are_optional():
    assert 'python_info' in MetricsRecorder().snapshot()
    assert 'python_info' not in MetricsRecorder(default_collectors=False).snapshot()


def test_recorders_do_not_share_state():
    first = MetricsRecorder(default_collectors=False)
    second = MetricsRecorder(default_collectors=False)
    first.observe(TimingObservation('GET', '/slow', 200, 0.3))

    assert first.observation_count('GET', '/slow', 200) == 1
    assert second.observation_count('GET', '/slow', 200) == 0


def test_in_progress_gauge(recorder):
    recorder.request_started('GET', '/slow')
    recorder.request_started('GET', '/slow')
    recorder.request_finished('GET', '/slow')

    value = recorder.registry.get_sample_value(
        'http_requests_in_progress', {'method': 'GET', 'route': '/slow'}
    )
    assert value == 1


def test_concurrent_observations_are_all_counted(recorder):
    def worker():
        for _ in range(500):
            recorder.observe(TimingObservation('GET', '/slow', 200, 0.2))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    snapshots = [recorder.snapshot() for _ in range(20)]
    for thread in threads:
        thread.join()

    assert snapshots
    counts = recorder.bucket_counts('GET', '/slow', 200)
    assert counts[0.1] == 0
    assert counts[0.5] == 4000
    assert counts[INF] == 4000
