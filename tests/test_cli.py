"""Tests for the codetree CLI."""

import json

import pytest
import respx
import yaml
from click.testing import CliRunner
from httpx import Response

from codetree.cli import cli, format_tree
from codetree.models import EntryKind, PatchAction, PatchInfo, TreeEntry
from codetree.store import JsonFileStore, StoreKey

REPO = "https://api.github.com/repos/octocat/Hello-World"


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config and store files out of the real home directory."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("CODETREE_TOKEN", raising=False)
    monkeypatch.delenv("CODETREE_STORE", raising=False)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "store.json"


def invoke(runner, store_path, *args):
    return runner.invoke(cli, ["--store", str(store_path), *args])


def mock_tree():
    respx.get(f"{REPO}/git/trees/main").mock(return_value=Response(200, json={
        "tree": [
            {"path": "src", "type": "tree", "sha": "s"},
            {"path": "src/app.py", "type": "blob", "sha": "a"},
            {"path": "README.md", "type": "blob", "sha": "r"},
        ],
    }))


class TestCLI:
    """Tests for the main CLI."""

    def test_cli_version(self, runner: CliRunner) -> None:
        """Test CLI version option."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_cli_help(self, runner: CliRunner) -> None:
        """Test CLI help output."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "codetree" in result.output
        for command in ("locate", "tree", "expand", "token", "instances"):
            assert command in result.output

    def test_tui_command_exists(self, runner: CliRunner) -> None:
        """Test the TUI command is registered."""
        result = runner.invoke(cli, ["tui", "--help"])
        assert result.exit_code == 0


class TestLocateCommand:
    """Tests for the locate command."""

    def test_github(self, runner: CliRunner, store_path) -> None:
        """Test locating a GitHub blob page."""
        result = invoke(runner, store_path, "locate", "https://github.com/pallets/click/blob/main/src/click/core.py")
        assert result.exit_code == 0
        assert "Provider: github (github.com)" in result.output
        assert "Owner: pallets" in result.output
        assert "Route: blob" in result.output
        assert "Remainder: main/src/click/core.py" in result.output

    def test_gitlab_nested(self, runner: CliRunner, store_path) -> None:
        """Test locating a nested GitLab merge request."""
        result = invoke(runner, store_path, "locate", "https://gitlab.com/a/b/c/-/merge_requests/3")
        assert result.exit_code == 0
        assert "Project path: a/b/c" in result.output
        assert "Route: reviewChanges" in result.output
        assert "Review: 3" in result.output

    def test_not_a_repository(self, runner: CliRunner, store_path) -> None:
        """Test non-repository pages fail."""
        result = invoke(runner, store_path, "locate", "https://github.com/pricing")
        assert result.exit_code == 1
        assert "Not a repository page" in result.output

    def test_custom_instance(self, runner: CliRunner, store_path) -> None:
        """Test pages of registered instances are recognised."""
        JsonFileStore(store_path).set(
            StoreKey.CUSTOM_INSTANCES, [{"url": "https://git.corp.example", "type": "gitlab"}]
        )
        result = invoke(runner, store_path, "locate", "https://git.corp.example/team/app/-/tree/main")
        assert result.exit_code == 0
        assert "Provider: gitlab (git.corp.example)" in result.output


class TestTreeCommand:
    """Tests for the tree command."""

    @respx.mock
    def test_text(self, runner: CliRunner, store_path) -> None:
        """Test the indented text listing."""
        mock_tree()
        result = invoke(runner, store_path, "tree", "https://github.com/octocat/Hello-World/tree/main")
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0] == "octocat/Hello-World @ main"
        assert lines[1:] == ["README.md", "src/", "  app.py"]

    @respx.mock
    def test_json(self, runner: CliRunner, store_path) -> None:
        """Test JSON output."""
        mock_tree()
        result = invoke(runner, store_path, "tree", "https://github.com/octocat/Hello-World/tree/main", "-f", "json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data[1] == {"path": "src", "kind": "directory", "content_id": "s"}

    @respx.mock
    def test_yaml(self, runner: CliRunner, store_path) -> None:
        """Test YAML output."""
        mock_tree()
        result = invoke(runner, store_path, "tree", "https://github.com/octocat/Hello-World/tree/main", "-f", "yaml")
        assert result.exit_code == 0, result.output
        data = yaml.safe_load(result.output)
        assert [item["path"] for item in data] == ["README.md", "src", "src/app.py"]

    @respx.mock
    def test_token_option(self, runner: CliRunner, store_path) -> None:
        """Test the token option authenticates requests."""
        route = respx.get(f"{REPO}/git/trees/main").mock(return_value=Response(200, json={"tree": []}))
        result = invoke(
            runner, store_path, "tree", "https://github.com/octocat/Hello-World/tree/main", "-t", "ghp_cli",
        )
        assert result.exit_code == 0, result.output
        assert route.calls[0].request.headers["Authorization"] == "token ghp_cli"

    @respx.mock
    def test_auth_required(self, runner: CliRunner, store_path) -> None:
        """Test missing credentials point at the token page."""
        respx.get(f"{REPO}/git/trees/main").mock(return_value=Response(401, json={"message": "Bad credentials"}))
        result = invoke(runner, store_path, "tree", "https://github.com/octocat/Hello-World/tree/main")
        assert result.exit_code == 1
        assert "https://github.com/settings/tokens/new" in result.output

    def test_not_a_repository(self, runner: CliRunner, store_path) -> None:
        """Test non-repository pages fail."""
        result = invoke(runner, store_path, "tree", "https://github.com/pricing")
        assert result.exit_code == 1
        assert "Not a repository page" in result.output


class TestExpandCommand:
    """Tests for the expand command."""

    @respx.mock
    def test_expand(self, runner: CliRunner, store_path) -> None:
        """Test listing one directory."""
        JsonFileStore(store_path).set(StoreKey.LAZYLOAD, True)
        respx.get(f"{REPO}/git/trees/main").mock(
            return_value=Response(200, json={"tree": [{"path": "src", "type": "tree", "sha": "s"}]})
        )
        respx.get(url__regex=rf"{REPO}/git/trees/main(:|%3A)src").mock(
            return_value=Response(200, json={"tree": [{"path": "app.py", "type": "blob", "sha": "a"}]})
        )
        result = invoke(runner, store_path, "expand", "https://github.com/octocat/Hello-World/tree/main", "src")
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "app.py"


class TestTokenCommand:
    """Tests for the token commands."""

    def test_set_public_host(self, runner: CliRunner, store_path) -> None:
        """Test storing a github.com token."""
        result = invoke(runner, store_path, "token", "set", "github.com", "ghp_x")
        assert result.exit_code == 0
        assert JsonFileStore(store_path).get(StoreKey.GITHUB_TOKEN) == "ghp_x"

    def test_set_custom_instance(self, runner: CliRunner, store_path) -> None:
        """Test storing a token for a registered instance."""
        invoke(runner, store_path, "instances", "add", "https://git.corp.example", "--type", "github")
        result = invoke(runner, store_path, "token", "set", "git.corp.example", "corp")
        assert result.exit_code == 0
        instances = JsonFileStore(store_path).get(StoreKey.CUSTOM_INSTANCES)
        assert instances == [{"url": "https://git.corp.example", "type": "github", "token": "corp"}]

    def test_set_unknown_host(self, runner: CliRunner, store_path) -> None:
        """Test unknown hosts are rejected."""
        result = invoke(runner, store_path, "token", "set", "nowhere.example", "x")
        assert result.exit_code == 1
        assert "Unknown host" in result.output


class TestInstancesCommand:
    """Tests for the instances commands."""

    def test_list_empty(self, runner: CliRunner, store_path) -> None:
        """Test listing without instances."""
        result = invoke(runner, store_path, "instances", "list")
        assert result.exit_code == 0
        assert "No custom instances registered." in result.output

    def test_add_and_list(self, runner: CliRunner, store_path) -> None:
        """Test adding then listing an instance."""
        result = invoke(runner, store_path, "instances", "add", "https://gitlab.internal", "-t", "glpat")
        assert result.exit_code == 0
        assert "gitlab.internal" in result.output

        result = invoke(runner, store_path, "instances", "list")
        assert "gitlab.internal [gitlab] (token)" in result.output

    def test_add_replaces_same_host(self, runner: CliRunner, store_path) -> None:
        """Test re-adding a host replaces it."""
        invoke(runner, store_path, "instances", "add", "https://git.corp.example", "--type", "gitlab")
        invoke(runner, store_path, "instances", "add", "https://git.corp.example", "--type", "github")
        instances = JsonFileStore(store_path).get(StoreKey.CUSTOM_INSTANCES)
        assert len(instances) == 1
        assert instances[0]["type"] == "github"

    def test_add_invalid(self, runner: CliRunner, store_path) -> None:
        """Test invalid URLs are rejected."""
        result = invoke(runner, store_path, "instances", "add", "not-a-url")
        assert result.exit_code == 1


class TestFormatTree:
    """Tests for format_tree()."""

    def test_review_annotations(self):
        """Test change counts and actions in text output."""
        tree = [
            TreeEntry(
                path="src",
                kind=EntryKind.DIRECTORY,
                patch=PatchInfo(action=None, additions=12, deletions=1, files_changed=2),
            ),
            TreeEntry(
                path="src/b.js",
                kind=EntryKind.FILE,
                patch=PatchInfo(action=PatchAction.ADDED, additions=2),
            ),
        ]
        assert format_tree(tree, "text").splitlines() == [
            "src/  +12 -1",
            "  b.js  +2 -0 [added]",
        ]

    def test_json_patch(self):
        """Test patch info is serialised with enum values."""
        tree = [TreeEntry(path="a", kind=EntryKind.FILE, patch=PatchInfo(action=PatchAction.REMOVED, deletions=3))]
        data = json.loads(format_tree(tree, "json"))
        assert data[0]["patch"]["action"] == "removed"
        assert data[0]["patch"]["deletions"] == 3
