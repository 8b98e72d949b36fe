"""Shared fixtures: a scripted ACP agent launched with the test interpreter."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from acpvisor.models.agent import AgentsConfig, AgentSpec

FAKE_AGENT = str(Path(__file__).resolve().parent / "fake_agent.py")


def make_fake_agent(agent_id: str = "fake", env: dict | None = None, **kwargs) -> AgentSpec:
    return AgentSpec(
        id=agent_id,
        label=kwargs.pop("label", "Fake Agent"),
        command=sys.executable,
        args=(FAKE_AGENT,),
        env=env or {},
        **kwargs,
    )


@pytest.fixture
def fake_agent():
    return make_fake_agent()


@pytest.fixture
def agents_config():
    return AgentsConfig(agents=(
        make_fake_agent("fake"),
        make_fake_agent("fails", env={"FAKE_AGENT_FAIL_INIT": "1"}, label="Refuses"),
    ))


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    (root / "README.md").write_text("# project\n")
    return root


@pytest.fixture
def agent_factory():
    return make_fake_agent
