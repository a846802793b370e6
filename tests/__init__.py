"""
DeployGate Test Suite
=====================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/           → Tests for deploygate.core (config, models, errors)
    ├── test_infrastructure/ → Tests for deploygate.infrastructure (stores, logs)
    ├── test_security/       → Tests for deploygate.security (broker, authorization)
    ├── test_build/          → Tests for deploygate.build (spec, runner, platform)
    ├── test_monitoring/     → Tests for deploygate.monitoring (log-derived counters)
    ├── test_provisioning/   → Tests for deploygate.provisioning
    ├── test_orchestration/  → Tests for deploygate.orchestration (retry policy)
    ├── test_integration/    → End-to-end integration tests
    ├── test_facade.py       → Tests for the DeployPipeline facade
    └── conftest.py          → Shared pytest fixtures

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_security/     # Run only security tests
    pytest -m integration           # Run only integration tests
    pytest --cov=deploygate         # Run with coverage report
"""
