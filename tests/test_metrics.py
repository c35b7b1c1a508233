from datetime import UTC, datetime

from fastapi.testclient import TestClient

from uptimewatch.domain.models import PollResult
from uptimewatch.main import create_app


def test_metrics_endpoint_contract_and_values() -> None:
    app = create_app(scheduler_interval_s=60.0, warmup_s=60.0)

    def fake_probe(url: str) -> PollResult:
        return PollResult(
            timestamp=datetime.now(UTC),
            outcome='online',
            response_time_ms=9,
            status_code=200,
        )

    app.state.probe_target = fake_probe

    with TestClient(app) as client:
        client.post(
            '/api/services',
            json={'name': 'metrics-target', 'url': 'https://example.com'},
        )
        client.post(
            '/api/services',
            json={'name': 'paused-target', 'url': 'https://example.org', 'is_active': False},
        )

        client.post('/api/scheduler/run-once')

        response = client.get('/api/metrics')
        assert response.status_code == 200
        payload = response.json()

        assert payload['uptime_s'] >= 0
        assert payload['targets_total'] == 2
        assert payload['targets_active'] == 1
        assert payload['scheduler']['successful_cycles'] >= 1
        assert payload['scheduler']['failed_cycles'] == 0
        assert payload['scheduler']['skipped_cycles'] == 0
        assert payload['scheduler']['consecutive_failures'] == 0
        assert payload['scheduler']['last_cycle_duration_ms'] is not None
        assert payload['scheduler']['last_probed_count'] == 1
        assert payload['service'] == 'uptimewatch'
        assert payload['version']
