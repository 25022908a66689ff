"""Health 엔드포인트 테스트."""


def test_health_without_db_is_degraded(client):
    """DB 미설정 + lifespan 미실행(Redis 클라이언트 없음) → degraded, redis disabled."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data == {"status": "degraded", "db": "error", "redis": "disabled"}


def test_health_ok_with_db_and_redis(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "db": "ok", "redis": "ok"}
