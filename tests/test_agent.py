import sys

import pytest

from trello_autopilot.agent import AgentFailure, AgentInvoker, CommandAgent
from trello_autopilot.config_loader import AgentConfig


def python_agent(code, timeout=30):
    return CommandAgent(command=sys.executable, args=["-c", code, "{prompt}"], timeout=timeout)


def test_default_command_line():
    agent = CommandAgent()
    assert agent.build_command("Fix it") == ["claude", "-p", "Fix it", "--output-format", "text"]


def test_from_config_override():
    agent = CommandAgent.from_config(AgentConfig(args=["--prompt={prompt}"]), command="codex")
    assert agent.build_command("x") == ["codex", "--prompt=x"]
    assert isinstance(agent, AgentInvoker)


def test_invoke_returns_stdout(tmp_path):
    agent = python_agent("import sys; print('fixed: ' + sys.argv[1])")
    assert agent.invoke("Login crash", tmp_path) == "fixed: Login crash"


def test_invoke_runs_in_working_dir(tmp_path):
    agent = python_agent("import os; print(os.getcwd())")
    assert agent.invoke("p", tmp_path) == str(tmp_path)


def test_empty_output(tmp_path):
    assert python_agent("pass").invoke("p", tmp_path) == "(no output)"


def test_nonzero_exit_raises(tmp_path):
    agent = python_agent("import sys; sys.stderr.write('rate limited'); sys.exit(2)")
    with pytest.raises(AgentFailure, match="exit code 2: rate limited"):
        agent.invoke("p", tmp_path)


def test_missing_command_raises(tmp_path):
    agent = CommandAgent(command="no-such-agent-xyz")
    with pytest.raises(AgentFailure, match="command not found"):
        agent.invoke("p", tmp_path)


def test_timeout_raises(tmp_path):
    agent = python_agent("import time; time.sleep(5)", timeout=0.5)
    with pytest.raises(AgentFailure, match="timed out"):
        agent.invoke("p", tmp_path)
