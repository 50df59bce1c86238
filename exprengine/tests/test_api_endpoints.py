"""
Tests for API endpoints
"""

import pytest
from fastapi.testclient import TestClient
from exprengine.api import app

client = TestClient(app)


def test_root_endpoint():
    """Test root endpoint"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "version" in data
    assert "evaluate" in data["endpoints"]


def test_health_endpoint():
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


def test_validate_endpoint_valid():
    """Test validation endpoint with a safe expression"""
    response = client.post("/validate", json={"expression": "2 × π"})
    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is True
    assert data["sanitized"] == "2 * pi"
    assert data["blocked"] == []


def test_validate_endpoint_blocked():
    """Test validation endpoint with an injection attempt"""
    response = client.post("/validate", json={"expression": "__import__('os')"})
    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is False
    assert len(data["blocked"]) > 0


def test_parse_endpoint():
    """Test parse endpoint reports variables, functions and complexity"""
    response = client.post("/parse", json={"expression": "x * 2 + sin(y)"})
    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is True
    assert data["expression"] == "x * 2 + sin(y)"
    assert data["variables"] == ["x", "y"]
    assert data["functions"] == ["sin"]
    assert data["complexity"] > 0
    assert data["ast"]["type"] == "operator"


def test_parse_endpoint_reports_errors():
    """Test that parse errors are returned in the body, not as a failure"""
    response = client.post("/parse", json={"expression": "1 +"})
    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is False
    assert data["ast"] is None
    assert len(data["errors"]) == 1


def test_parse_endpoint_empty():
    """Test that blank input is valid and flagged empty"""
    response = client.post("/parse", json={"expression": "   "})
    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is True
    assert data["is_empty"] is True


def test_evaluate_endpoint():
    """Test evaluating a constant expression"""
    response = client.post("/evaluate", json={"expression": "2 + 3 * 4"})
    assert response.status_code == 200
    data = response.json()
    assert data["result"] == 14
    assert data["symbolic"] is False
    assert data["expression"] == "2 + 3 * 4"


def test_evaluate_endpoint_with_variables():
    """Test that variable names from the request are accepted"""
    response = client.post(
        "/evaluate", json={"expression": "rate * 3", "variables": {"rate": 1.5}}
    )
    assert response.status_code == 200
    assert response.json()["result"] == pytest.approx(4.5)


def test_evaluate_endpoint_division_by_zero():
    """Test structured error for division by zero"""
    response = client.post("/evaluate", json={"expression": "1 / 0"})
    assert response.status_code == 400
    data = response.json()
    assert data["code"] == "division_by_zero"
    assert data["kind"] == "DivisionByZeroError"
    assert data["title"] == "Division by Zero"


def test_evaluate_endpoint_unsafe_function():
    """Test that calls outside the allow-list are rejected"""
    response = client.post("/evaluate", json={"expression": "eval(x)"})
    assert response.status_code == 400
    data = response.json()
    assert data["code"] == "unsafe_function"
    assert data["details"]["position"] == 0


def test_evaluate_endpoint_blocked_pattern():
    """Test that injection attempts never reach the parser"""
    response = client.post("/evaluate", json={"expression": "__import__('os')"})
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_evaluate_endpoint_undefined_variable():
    """Test evaluation with an unbound variable"""
    response = client.post(
        "/evaluate", json={"expression": "x + y", "variables": {"x": 1}}
    )
    assert response.status_code == 400
    data = response.json()
    assert data["code"] == "undefined_variable"
    assert "y" in data["message"]


def test_evaluate_endpoint_symbolic():
    """Test that allow_symbolic returns a simplified expression"""
    response = client.post(
        "/evaluate", json={"expression": "x + 2 * 3", "allow_symbolic": True}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["symbolic"] is True
    assert data["result"] == "x + 6"


def test_evaluate_endpoint_rejects_infinite_variable():
    """Test that variable values must be finite"""
    response = client.post(
        "/evaluate", json={"expression": "x", "variables": {"x": "inf"}}
    )
    assert response.status_code == 422
    assert response.json()["code"] == "request_validation_error"


def test_evaluate_endpoint_missing_field():
    """Test request validation for a missing expression"""
    response = client.post("/evaluate", json={})
    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "request_validation_error"
    assert "expression" in data["message"]


def test_simplify_endpoint():
    """Test simplification endpoint"""
    response = client.post("/simplify", json={"expression": "x * 1 + 0 * y"})
    assert response.status_code == 200
    data = response.json()
    assert data["expression"] == "x * 1 + 0 * y"
    assert data["simplified"] == "x"
    assert data["ast"] == {"type": "variable", "name": "x"}


def test_differentiate_endpoint():
    """Test differentiation endpoint"""
    response = client.post(
        "/differentiate", json={"expression": "2 * x", "variable": "x"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["variable"] == "x"
    assert data["derivative"] == "2"


def test_differentiate_endpoint_multi_letter_variable():
    """Test that the target variable name is accepted by the validator"""
    response = client.post(
        "/differentiate", json={"expression": "time ^ 2", "variable": "time"}
    )
    assert response.status_code == 200
    assert response.json()["derivative"] == "2 * time"


def test_differentiate_endpoint_unsupported():
    """Test differentiation of a function without a derivative rule"""
    response = client.post(
        "/differentiate", json={"expression": "max(x, 1)", "variable": "x"}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "differentiation_error"


def test_steps_endpoint():
    """Test step-by-step evaluation"""
    response = client.post(
        "/steps", json={"expression": "2 + 3 * x", "variables": {"x": 2}}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["result"] == 8
    assert data["steps"][0]["expression"] == "2 + 3 * x"
    assert data["steps"][-1]["result"] == 8


def test_limit_endpoint():
    """Test numeric limit endpoint"""
    response = client.post(
        "/limit",
        json={"expression": "sin(x) / x", "variable": "x", "approaching": 0},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["exists"] is True
    assert data["value"] == pytest.approx(1.0)


def test_limit_endpoint_at_infinity():
    """Test a limit point given as text"""
    response = client.post(
        "/limit",
        json={"expression": "1 / x", "variable": "x", "approaching": "inf"},
    )
    assert response.status_code == 200
    assert response.json()["value"] == pytest.approx(0.0, abs=1e-6)


def test_sample_endpoint():
    """Test that undefined sample points come back as null"""
    response = client.post(
        "/sample",
        json={"expression": "1 / x", "variable": "x", "start": -1, "stop": 1, "num": 5},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["x"] == pytest.approx([-1.0, -0.5, 0.0, 0.5, 1.0])
    assert data["y"][2] is None
    assert data["y"][0] == pytest.approx(-1.0)


def test_solve_endpoint():
    """Test equation solving endpoint"""
    response = client.post("/solve", json={"equation": "x^2 = 4", "variable": "x"})
    assert response.status_code == 200
    data = response.json()
    assert data["roots"] == pytest.approx([-2.0, 2.0])
    assert data["equation"] == "x ^ 2 - 4"


def test_solve_endpoint_invalid_interval():
    """Test solver error mapping"""
    response = client.post(
        "/solve",
        json={"equation": "x = 1", "variable": "x", "lower": 5, "upper": 1},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "solver_error"


def test_cache_stats_endpoint():
    """Test that repeated requests hit the expression cache"""
    client.post("/evaluate", json={"expression": "7 * 6 - 1"})
    client.post("/evaluate", json={"expression": "7 * 6 - 1"})

    response = client.get("/cache/stats")
    assert response.status_code == 200
    data = response.json()
    assert data["hits"] >= 1
    assert data["size"] >= 1


def test_request_id_header():
    """Test that the request ID is echoed back or generated"""
    response = client.get("/health", headers={"X-Request-ID": "test-request-123"})
    assert response.headers["X-Request-ID"] == "test-request-123"

    response = client.get("/health")
    assert response.headers.get("X-Request-ID")


def test_differentiate_endpoint_higher_order():
    """Test repeated differentiation through the order field"""
    response = client.post(
        "/differentiate", json={"expression": "x ^ 3", "variable": "x", "order": 3}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["order"] == 3
    assert data["derivative"] == "6"


def test_differentiate_endpoint_order_out_of_range():
    """Test order is limited to 1..10"""
    response = client.post(
        "/differentiate", json={"expression": "x", "variable": "x", "order": 11}
    )
    assert response.status_code == 422


def test_integrate_endpoint():
    """Test indefinite integration endpoint"""
    response = client.post("/integrate", json={"expression": "cos(x)", "variable": "x"})
    assert response.status_code == 200
    data = response.json()
    assert data["integral"] == "sin(x)"
    assert data["ast"]["type"] == "function"


def test_integrate_endpoint_unsupported():
    """Test integration outside the supported rules"""
    response = client.post(
        "/integrate", json={"expression": "x * sin(x)", "variable": "x"}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "integration_error"


def test_series_endpoint():
    """Test Taylor series of exp about 0"""
    response = client.post(
        "/series", json={"expression": "exp(x)", "variable": "x", "order": 4}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["center"] == 0.0
    assert data["coefficients"] == pytest.approx([1, 1, 1 / 2, 1 / 6, 1 / 24])


def test_series_endpoint_order_out_of_range():
    """Test series order is limited to 0..7"""
    response = client.post(
        "/series", json={"expression": "exp(x)", "variable": "x", "order": 8}
    )
    assert response.status_code == 422


def test_multivariable_series_endpoint():
    """Test multivariable expansion endpoint"""
    response = client.post(
        "/series/multivariable",
        json={
            "expression": "x * y",
            "series_variables": ["x", "y"],
            "point": {"x": 0, "y": 0},
            "order": 2,
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert data["terms"] == [{"powers": {"x": 1, "y": 1}, "coefficient": 1.0}]
    assert data["expression"] == "x * y"


def test_multivariable_series_endpoint_missing_point():
    """Test the expansion point must cover every expansion variable"""
    response = client.post(
        "/series/multivariable",
        json={"expression": "x * y", "series_variables": ["x", "y"], "point": {"x": 0}},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "domain_error"


def test_request_id_header_rejects_unsafe_value():
    """Test that a request ID outside the allowed characters is replaced"""
    response = client.get("/health", headers={"X-Request-ID": "bad id; level=ERROR"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] != "bad id; level=ERROR"
    assert len(response.headers["X-Request-ID"]) == 36
