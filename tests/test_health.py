def test_healthz(client):
    rv = client.get("/healthz")
    assert rv.status_code == 200
    assert rv.json["ok"] is True

def test_ledger_health(client, driver):
    rv = client.get("/healthz/ledger")
    assert rv.status_code == 200
    assert rv.json["driver"]["type"] == "mock"
    assert rv.json["driver"]["network"] == "local"

def test_ledger_health_unavailable(client, driver):
    driver.available = False
    rv = client.get("/healthz/ledger")
    assert rv.status_code == 503

def test_ledger_health_unknown_network(client):
    rv = client.get("/healthz/ledger", query_string={"network": "nowhere"})
    assert rv.status_code == 404
