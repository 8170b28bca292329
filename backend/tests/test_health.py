"""Test that the FastAPI app can be imported and /health endpoint works."""
from fastapi.testclient import TestClient
from readnext.main import app

def test_health_endpoint():
    """Test that GET /health returns 200 and {"status": "ok"}."""
    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_recommendation_routes_are_mounted():
    paths = {route.path for route in app.routes}
    assert "/api/users/{user_id}/recommendations" in paths
    assert "/api/users/{user_id}/recommendations/stored" in paths
    assert "/api/users/{user_id}/recommendations/interactions" in paths
    assert "/api/users/{user_id}/recommendations/invalidate" in paths
