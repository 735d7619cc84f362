"""Tests for the navigation pipeline."""

import asyncio
import base64

import pytest
import respx
from httpx import Response

from codetree.config import CodeTreeConfig
from codetree.errors import AuthRequired, CodeTreeError, RefNotFound
from codetree.models import EntryKind, PatchAction
from codetree.session import NavigationSession
from codetree.store import MemoryStore, StoreKey

API = "https://api.github.com"
REPO = f"{API}/repos/octocat/Hello-World"
SRC_TREE = r"https://api\.github\.com/repos/octocat/Hello-World/git/trees/main(:|%3A)src"
CONFIG = CodeTreeConfig(max_retries=0, retry_delay=0, respect_rate_limit=False)


def git_tree(*items, truncated=False):
    return Response(200, json={"sha": "root", "tree": list(items), "truncated": truncated})


def make_session(store=None, **kwargs):
    return NavigationSession(store or MemoryStore(), config=CONFIG, **kwargs)


class TestNavigate:
    """Tests for NavigationSession.navigate()."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_tree_page(self):
        """Test a tree page resolves ref, sub path and full tree."""
        respx.get(f"{REPO}/branches/main").mock(return_value=Response(200, json={"name": "main"}))
        respx.get(f"{REPO}/git/trees/main").mock(return_value=git_tree(
            {"path": "docs", "type": "tree", "sha": "d"},
            {"path": "docs/index.md", "type": "blob", "sha": "i"},
            {"path": "README", "type": "blob", "sha": "r"},
        ))

        async with make_session() as session:
            result = await session.navigate("https://github.com/octocat/Hello-World/tree/main/docs")

        assert result.location.ref == "main"
        assert result.location.sub_path == "docs"
        assert result.lazy is False
        assert [e.path for e in result.tree] == ["README", "docs", "docs/index.md"]
        assert result.submodules == {}
        assert session.current == result.location

    @pytest.mark.asyncio
    async def test_not_a_repository(self):
        """Test non-repository pages yield nothing and clear the location."""
        async with make_session() as session:
            assert await session.navigate("https://github.com/pricing") is None
            assert session.current is None

    @pytest.mark.asyncio
    async def test_unknown_host(self):
        """Test hosts without a provider yield nothing."""
        async with make_session() as session:
            assert await session.navigate("https://example.com/a/b") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_token_from_store(self):
        """Test the stored token authenticates API calls."""
        route = respx.get(f"{REPO}/git/trees/main").mock(return_value=git_tree())
        store = MemoryStore({StoreKey.GITHUB_TOKEN: "ghp_secret"})
        async with make_session(store) as session:
            await session.navigate("https://github.com/octocat/Hello-World/tree/main")
        assert route.calls[0].request.headers["Authorization"] == "token ghp_secret"

    @pytest.mark.asyncio
    @respx.mock
    async def test_explicit_token_wins(self):
        """Test a token passed to the session overrides the store."""
        route = respx.get(f"{REPO}/git/trees/main").mock(return_value=git_tree())
        store = MemoryStore({StoreKey.GITHUB_TOKEN: "stored"})
        async with make_session(store, token="explicit") as session:
            await session.navigate("https://github.com/octocat/Hello-World/tree/main")
        assert route.calls[0].request.headers["Authorization"] == "token explicit"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_errors_propagate(self):
        """Test a missing ref surfaces to the caller."""
        respx.get(f"{REPO}/git/trees/gone").mock(return_value=Response(404))
        async with make_session() as session:
            with pytest.raises(RefNotFound):
                await session.navigate("https://github.com/octocat/Hello-World/tree/gone")

    @pytest.mark.asyncio
    @respx.mock
    async def test_submodules(self):
        """Test submodule URLs are attached to the result."""
        gitmodules = '[submodule "lib"]\n\tpath = lib\n\turl = https://github.com/x/lib.git\n'
        respx.get(f"{REPO}/git/trees/main").mock(return_value=git_tree(
            {"path": ".gitmodules", "type": "blob", "sha": "gm"},
            {"path": "lib", "type": "commit", "sha": "c"},
        ))
        respx.get(f"{REPO}/git/blobs/gm").mock(
            return_value=Response(200, json={"content": base64.b64encode(gitmodules.encode()).decode()})
        )
        async with make_session() as session:
            result = await session.navigate("https://github.com/octocat/Hello-World/tree/main")

        assert result.submodules == {"lib": "https://github.com/x/lib.git"}
        assert result.tree[1].kind is EntryKind.SUBMODULE

    @pytest.mark.asyncio
    @respx.mock
    async def test_gitlab_project(self):
        """Test a nested GitLab project page."""
        respx.get(url__regex=r"https://gitlab\.com/api/v4/projects/group(%2F|/)sub(%2F|/)app/repository/tree").mock(
            return_value=Response(200, json=[{"id": "1", "type": "blob", "path": "Gemfile"}])
        )
        async with make_session() as session:
            result = await session.navigate("https://gitlab.com/group/sub/app/-/tree/develop")

        assert result.location.owner == "group"
        assert result.location.identity == "group/sub/app"
        assert result.location.ref == "develop"
        assert [e.path for e in result.tree] == ["Gemfile"]


class TestLazyLoading:
    """Tests for lazy tree loading."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_lazyload_preference(self):
        """Test the lazy preference lists only the root."""
        route = respx.get(f"{REPO}/git/trees/main").mock(
            return_value=git_tree({"path": "src", "type": "tree", "sha": "s"})
        )
        store = MemoryStore({StoreKey.LAZYLOAD: True})
        async with make_session(store) as session:
            result = await session.navigate("https://github.com/octocat/Hello-World/tree/main")

        assert result.lazy is True
        assert [e.path for e in result.tree] == ["src"]
        assert "recursive" not in route.calls[0].request.url.params

    @pytest.mark.asyncio
    @respx.mock
    async def test_truncated_tree_falls_back(self):
        """Test a truncated listing marks the repo huge and loads lazily."""
        full = respx.get(f"{REPO}/git/trees/main", params={"recursive": "1"}).mock(
            return_value=git_tree({"path": "a", "type": "blob"}, truncated=True)
        )
        respx.get(f"{REPO}/git/trees/main").mock(
            return_value=git_tree({"path": "a", "type": "blob", "sha": "a"})
        )
        store = MemoryStore()
        async with make_session(store) as session:
            result = await session.navigate("https://github.com/octocat/Hello-World/tree/main")
            assert result.lazy is True
            assert "octocat/Hello-World" in store.get(StoreKey.HUGE_REPOS)

            again = await session.navigate("https://github.com/octocat/Hello-World/tree/main")
            assert again.lazy is True
        assert full.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_expand(self):
        """Test expanding a directory of the current location."""
        respx.get(f"{REPO}/git/trees/main").mock(
            return_value=git_tree({"path": "src", "type": "tree", "sha": "s"})
        )
        respx.get(url__regex=SRC_TREE).mock(
            return_value=git_tree({"path": "app.py", "type": "blob", "sha": "a"})
        )
        store = MemoryStore({StoreKey.LAZYLOAD: True})
        async with make_session(store) as session:
            await session.navigate("https://github.com/octocat/Hello-World/tree/main")
            children = await session.expand("src")
        assert [e.path for e in children] == ["src/app.py"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_expand_keeps_submodules(self):
        """Test submodules listed lazily are not shown as files."""
        respx.get(f"{REPO}/git/trees/main").mock(
            return_value=git_tree({"path": "src", "type": "tree", "sha": "s"})
        )
        respx.get(url__regex=SRC_TREE).mock(
            return_value=git_tree({"path": "vendored", "type": "commit", "sha": "c"})
        )
        store = MemoryStore({StoreKey.LAZYLOAD: True})
        async with make_session(store) as session:
            await session.navigate("https://github.com/octocat/Hello-World/tree/main")
            children = await session.expand("src")
            location = session.current
        assert children[0].kind is EntryKind.SUBMODULE
        assert "/blob/" not in session.registry.get_provider("github.com").build_item_url(location, children[0])

    @pytest.mark.asyncio
    async def test_expand_without_location(self):
        """Test expanding before any navigation fails."""
        async with make_session() as session:
            with pytest.raises(CodeTreeError):
                await session.expand("src")


class TestReviewMode:
    """Tests for pull and merge request pages."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_pull_request(self):
        """Test review pages show only the changed files."""
        respx.get(f"{REPO}/pulls/7").mock(
            return_value=Response(200, json={"number": 7, "base": {"ref": "develop"}})
        )
        respx.get(f"{REPO}/pulls/7/files").mock(return_value=Response(200, json=[
            {"filename": "src/a.js", "status": "modified", "additions": 10, "deletions": 1},
            {"filename": "src/b.js", "status": "added", "additions": 2, "deletions": 0},
        ]))
        async with make_session() as session:
            result = await session.navigate("https://github.com/octocat/Hello-World/pull/7/files")

        assert result.location.ref == "develop"
        assert result.location.review_id == "7"
        assert result.lazy is False
        src = result.tree[0]
        assert (src.path, src.patch.files_changed, src.patch.additions, src.patch.deletions) == ("src", 2, 12, 1)
        assert result.tree[2].patch.action is PatchAction.ADDED

    @pytest.mark.asyncio
    @respx.mock
    async def test_review_preference_off(self):
        """Test review pages show the target branch when the preference is off."""
        respx.get(f"{REPO}/pulls/7").mock(
            return_value=Response(200, json={"number": 7, "base": {"ref": "develop"}})
        )
        respx.get(f"{REPO}/git/trees/develop").mock(
            return_value=git_tree({"path": "README", "type": "blob", "sha": "r"})
        )
        store = MemoryStore({StoreKey.PR: False})
        async with make_session(store) as session:
            result = await session.navigate("https://github.com/octocat/Hello-World/pull/7")

        assert result.location.review_id is None
        assert [e.path for e in result.tree] == ["README"]


class TestStaleNavigation:
    """Tests for superseded navigations."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_older_navigation_discarded(self, monkeypatch):
        """Test a navigation overtaken by a newer one returns None."""
        respx.get(f"{API}/repos/o/slow/git/trees/main").mock(return_value=git_tree())
        respx.get(f"{API}/repos/o/fast/git/trees/main").mock(
            return_value=git_tree({"path": "fast.txt", "type": "blob", "sha": "f"})
        )

        session = make_session()
        provider = session.registry.get_provider("github.com")
        get_tree = provider.get_tree
        entered = asyncio.Event()
        release = asyncio.Event()

        async def gated_get_tree(client, fetcher, location, dir_path=None):
            if location.repo == "slow":
                entered.set()
                await release.wait()
            return await get_tree(client, fetcher, location, dir_path)

        monkeypatch.setattr(provider, "get_tree", gated_get_tree)

        async with session:
            slow = asyncio.create_task(session.navigate("https://github.com/o/slow/tree/main"))
            await entered.wait()
            fast = await session.navigate("https://github.com/o/fast/tree/main")
            release.set()

            assert await slow is None
            assert [e.path for e in fast.tree] == ["fast.txt"]
            assert session.current.repo == "fast"

    @pytest.mark.asyncio
    @respx.mock
    async def test_older_navigation_error_discarded(self, monkeypatch):
        """Test a failure of an overtaken navigation does not reach the caller."""
        respx.get(f"{API}/repos/o/slow/git/trees/main").mock(
            return_value=Response(401, json={"message": "Bad credentials"})
        )
        respx.get(f"{API}/repos/o/fast/git/trees/main").mock(return_value=git_tree())

        session = make_session()
        provider = session.registry.get_provider("github.com")
        get_tree = provider.get_tree
        entered = asyncio.Event()
        release = asyncio.Event()

        async def gated_get_tree(client, fetcher, location, dir_path=None):
            if location.repo == "slow":
                entered.set()
                await release.wait()
            return await get_tree(client, fetcher, location, dir_path)

        monkeypatch.setattr(provider, "get_tree", gated_get_tree)

        async with session:
            slow = asyncio.create_task(session.navigate("https://github.com/o/slow/tree/main"))
            await entered.wait()
            await session.navigate("https://github.com/o/fast/tree/main")
            release.set()

            assert await slow is None
            assert session.current.repo == "fast"

    @pytest.mark.asyncio
    @respx.mock
    async def test_current_navigation_error_raised(self):
        """Test a failure of the latest navigation still propagates."""
        respx.get(f"{API}/repos/o/r/git/trees/main").mock(
            return_value=Response(401, json={"message": "Bad credentials"})
        )
        async with make_session() as session:
            with pytest.raises(AuthRequired):
                await session.navigate("https://github.com/o/r/tree/main")

    @pytest.mark.asyncio
    @respx.mock
    async def test_expand_error_after_navigating_away(self, monkeypatch):
        """Test an expansion failing after a new navigation returns None."""
        respx.get(f"{REPO}/git/trees/main").mock(
            return_value=git_tree({"path": "src", "type": "tree", "sha": "s"})
        )
        respx.get(url__regex=SRC_TREE).mock(return_value=Response(401))
        respx.get(f"{API}/repos/o/other/git/trees/main").mock(return_value=git_tree())

        session = make_session(MemoryStore({StoreKey.LAZYLOAD: True}))
        provider = session.registry.get_provider("github.com")
        get_tree = provider.get_tree
        entered = asyncio.Event()
        release = asyncio.Event()

        async def gated_get_tree(client, fetcher, location, dir_path=None):
            if dir_path == "src":
                entered.set()
                await release.wait()
            return await get_tree(client, fetcher, location, dir_path)

        monkeypatch.setattr(provider, "get_tree", gated_get_tree)

        async with session:
            await session.navigate("https://github.com/octocat/Hello-World/tree/main")
            expansion = asyncio.create_task(session.expand("src"))
            await entered.wait()
            await session.navigate("https://github.com/o/other/tree/main")
            release.set()

            assert await expansion is None
