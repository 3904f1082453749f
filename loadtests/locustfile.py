"""Locust scenarios for public portfolio traffic and login throughput."""

from __future__ import annotations

import os
from dataclasses import dataclass

from locust import HttpUser, between, events, task


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean environment flag."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    """Read a float environment variable with fallback."""
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class LoadSettings:
    """Runtime settings for load-test behavior."""

    email: str
    password: str
    user_id: str
    connection_id: str
    allow_429: bool
    max_failure_rate_pct: float


SETTINGS = LoadSettings(
    email=os.environ.get("LINKVAULT_LOAD_EMAIL", "loadtest@example.com"),
    password=os.environ.get("LINKVAULT_LOAD_PASSWORD", "Password123!"),
    user_id=os.environ.get("LINKVAULT_LOAD_USER_ID", ""),
    connection_id=os.environ.get("LINKVAULT_LOAD_CONNECTION_ID", ""),
    allow_429=_env_bool("LINKVAULT_LOAD_ALLOW_429", True),
    max_failure_rate_pct=_env_float("LINKVAULT_LOAD_MAX_FAILURE_RATE_PCT", 0.1),
)


class PortfolioVisitor(HttpUser):
    """Anonymous visitor reading a portfolio and following its links."""

    wait_time = between(0.05, 0.2)
    weight = 4

    @task(3)
    def view_portfolio(self) -> None:
        with self.client.get(
            f"/users/portfolio/{SETTINGS.user_id}",
            headers={"referer": "https://www.google.com/"},
            name="GET /users/portfolio/[id]",
            catch_response=True,
        ) as response:
            if response.status_code == 200 and "email" not in response.json():
                response.success()
                return
            response.failure(f"unexpected status={response.status_code}")

    @task(2)
    def list_connections(self) -> None:
        self.client.get(
            f"/connections/user/{SETTINGS.user_id}",
            name="GET /connections/user/[id]",
        )

    @task(1)
    def click_connection(self) -> None:
        with self.client.post(
            f"/connections/{SETTINGS.connection_id}/click",
            name="POST /connections/[id]/click",
            catch_response=True,
        ) as response:
            if response.status_code == 200 and response.json().get("url"):
                response.success()
                return
            response.failure(f"unexpected status={response.status_code}")


class LoginFlowUser(HttpUser):
    """Owner logging in and reading their dashboard reports."""

    wait_time = between(0.1, 0.5)
    weight = 1

    @task
    def login_and_read_overview(self) -> None:
        with self.client.post(
            "/auth/login",
            json={"email": SETTINGS.email, "password": SETTINGS.password},
            name="POST /auth/login",
            catch_response=True,
        ) as response:
            if response.status_code == 429 and SETTINGS.allow_429:
                response.success()
                return
            token = response.json().get("token") if response.status_code == 200 else None
            if not token:
                response.failure(f"unexpected status={response.status_code}")
                return
            response.success()

        self.client.get(
            "/analytics/overview",
            headers={"authorization": f"Bearer {token}"},
            name="GET /analytics/overview",
        )


@events.test_start.add_listener
def _on_test_start(environment, **_kwargs) -> None:
    if not SETTINGS.user_id or not SETTINGS.connection_id:
        print("[loadtest] run loadtests/seed_load_user.py and export the printed ids first")
        environment.process_exit_code = 1


@events.quitting.add_listener
def _on_quitting(environment, **_kwargs) -> None:
    """Fail the run when the error rate exceeds the configured threshold."""
    failure_rate_pct = environment.stats.total.fail_ratio * 100.0
    if SETTINGS.max_failure_rate_pct >= 0 and failure_rate_pct > SETTINGS.max_failure_rate_pct:
        print(
            f"[loadtest] failure rate {failure_rate_pct:.3f}% exceeded "
            f"max {SETTINGS.max_failure_rate_pct:.3f}%"
        )
        environment.process_exit_code = 1
