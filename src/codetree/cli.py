"""Click CLI for codetree."""

import asyncio
import json
import logging
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Optional

import click
import yaml
from trogon import tui

from codetree import __version__
from codetree.config import OUTPUT_FORMAT_OPTIONS, CodeTreeConfig
from codetree.errors import AuthRequired, CodeTreeError, NotApplicable
from codetree.models import DomSnapshot, Tree, TreeEntry
from codetree.providers.github import REF_SELECTORS as GITHUB_REF_SELECTORS
from codetree.providers.gitlab import REF_SELECTORS as GITLAB_REF_SELECTORS
from codetree.session import NavigationSession
from codetree.store import CustomInstance, JsonFileStore, StoreKey, get_custom_instances

TOKEN_KEYS = {
    "github.com": StoreKey.GITHUB_TOKEN,
    "gitlab.com": StoreKey.GITLAB_TOKEN,
}


def _jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def entry_to_dict(entry: TreeEntry) -> dict:
    data = _jsonable(asdict(entry))
    if data["patch"] is None:
        del data["patch"]
    return data


def format_tree(tree: Tree, output_format: str) -> str:
    """Render a tree as indented text, JSON or YAML."""
    if output_format == "json":
        return json.dumps([entry_to_dict(e) for e in tree], indent=2)
    if output_format == "yaml":
        return yaml.safe_dump([entry_to_dict(e) for e in tree], sort_keys=False, allow_unicode=True)

    lines = []
    for entry in tree:
        depth = entry.path.count("/")
        name = entry.name + ("/" if entry.is_directory else "")
        if entry.patch is not None:
            name += f"  +{entry.patch.additions} -{entry.patch.deletions}"
            if entry.patch.action is not None:
                name += f" [{entry.patch.action.value}]"
        lines.append("  " * depth + name)
    return "\n".join(lines)


def _dom_from_options(ref_hint: Optional[str]) -> DomSnapshot:
    # The CLI has no page; a ref hint stands in for the ref selector widget
    if not ref_hint:
        return DomSnapshot()
    return DomSnapshot({GITHUB_REF_SELECTORS[0]: ref_hint, GITLAB_REF_SELECTORS[0]: ref_hint})


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(1)


@tui()
@click.group()
@click.version_option(version=__version__, prog_name="codetree")
@click.option(
    "--store",
    "store_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="CODETREE_STORE",
    help="Path of the JSON store (default: ~/.codetree/store.json)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log HTTP activity")
@click.pass_context
def cli(ctx: click.Context, store_path: Optional[Path], verbose: bool) -> None:
    """codetree - browse repository pages as file trees.

    Quick start:
        codetree locate URL           Show what a page URL points at
        codetree tree URL             Print the file tree for a page
        codetree expand URL DIR       Print the children of one directory
        codetree token set HOST TOKEN Store an access token
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["store_path"] = store_path


def _store(ctx: click.Context) -> JsonFileStore:
    return JsonFileStore(ctx.obj.get("store_path"))


@cli.command()
@click.argument("url")
@click.pass_context
def locate(ctx: click.Context, url: str) -> None:
    """Parse a page URL without any network access."""
    session = NavigationSession(_store(ctx))
    try:
        provider, route = session.parse(url)
    except NotApplicable as e:
        _fail(f"Not a repository page ({e})")

    location = route.location
    click.echo(f"Provider: {provider.name} ({provider.hostname})")
    click.echo(f"Owner: {location.owner}")
    click.echo(f"Repository: {location.repo}")
    if location.identity != location.full_name:
        click.echo(f"Project path: {location.identity}")
    click.echo(f"Route: {route.type.value}")
    if route.remainder:
        click.echo(f"Remainder: {route.remainder}")
    if route.review_id:
        click.echo(f"Review: {route.review_id}")


async def _navigate(session: NavigationSession, url: str, dom: DomSnapshot, dir_path: Optional[str]):
    async with session:
        result = await session.navigate(url, dom)
        if result is None or dir_path is None:
            return result, None
        return result, await session.expand(dir_path)


def _run(ctx: click.Context, url: str, token: Optional[str], ref_hint: Optional[str], dir_path: Optional[str]):
    config = CodeTreeConfig.load()
    session = NavigationSession(_store(ctx), config=config, token=token)
    try:
        return asyncio.run(_navigate(session, url, _dom_from_options(ref_hint), dir_path))
    except AuthRequired as e:
        provider = session.provider or session.parse(url)[0]
        _fail(f"{e}. Create a token at {provider.get_default_create_token_url()}")
    except CodeTreeError as e:
        _fail(str(e))


@cli.command()
@click.argument("url")
@click.option("--token", "-t", envvar="CODETREE_TOKEN", help="Access token for the page's host")
@click.option("--ref", "ref_hint", help="Ref shown on the page, if known")
@click.option(
    "--format", "-f", "output_format",
    type=click.Choice([value for value, _ in OUTPUT_FORMAT_OPTIONS]),
    help="Output format (default from config)",
)
@click.pass_context
def tree(
    ctx: click.Context,
    url: str,
    token: Optional[str],
    ref_hint: Optional[str],
    output_format: Optional[str],
) -> None:
    """Print the file tree for a repository page.

    URL: repository, tree, blob, pull request or merge request page

    Examples:
        codetree tree https://github.com/pallets/click
        codetree tree https://gitlab.com/group/project/-/merge_requests/12 -f json
    """
    result, _ = _run(ctx, url, token, ref_hint, None)
    if result is None:
        _fail("Not a repository page")

    output_format = output_format or CodeTreeConfig.load().output_format
    location = result.location
    if output_format == "text":
        click.echo(f"{location.identity} @ {location.ref}" + (" (lazy)" if result.lazy else ""))
    click.echo(format_tree(result.tree, output_format))


@cli.command()
@click.argument("url")
@click.argument("dir_path")
@click.option("--token", "-t", envvar="CODETREE_TOKEN", help="Access token for the page's host")
@click.option("--ref", "ref_hint", help="Ref shown on the page, if known")
@click.option(
    "--format", "-f", "output_format",
    type=click.Choice([value for value, _ in OUTPUT_FORMAT_OPTIONS]),
    help="Output format (default from config)",
)
@click.pass_context
def expand(
    ctx: click.Context,
    url: str,
    dir_path: str,
    token: Optional[str],
    ref_hint: Optional[str],
    output_format: Optional[str],
) -> None:
    """Print the immediate children of DIR_PATH."""
    result, children = _run(ctx, url, token, ref_hint, dir_path)
    if result is None or children is None:
        _fail("Not a repository page")
    click.echo(format_tree(children, output_format or CodeTreeConfig.load().output_format))


# Token commands group
@cli.group()
def token() -> None:
    """Access token commands."""
    pass


@token.command("set")
@click.argument("host")
@click.argument("value")
@click.pass_context
def token_set(ctx: click.Context, host: str, value: str) -> None:
    """Store the access token used for HOST."""
    store = _store(ctx)
    key = TOKEN_KEYS.get(host)
    if key is not None:
        store.set(key, value)
        click.echo(f"✓ Stored token for {host}")
        return

    instances = get_custom_instances(store)
    match = next((i for i in instances if i.hostname == host), None)
    if match is None:
        _fail(f"Unknown host '{host}'. Add it first with 'codetree instances add'.")
    updated = [
        {"url": i.url, "type": i.type, "token": value if i is match else i.token}
        for i in instances
    ]
    store.set(StoreKey.CUSTOM_INSTANCES, updated)
    click.echo(f"✓ Stored token for {host}")


# Custom instance commands group
@cli.group()
def instances() -> None:
    """Self-hosted GitHub Enterprise and GitLab instances."""
    pass


@instances.command("add")
@click.argument("url")
@click.option("--type", "instance_type", type=click.Choice(["github", "gitlab"]), default="gitlab", show_default=True)
@click.option("--token", "-t", help="Access token for the instance")
@click.pass_context
def instances_add(ctx: click.Context, url: str, instance_type: str, token: Optional[str]) -> None:
    """Register a self-hosted instance at URL."""
    instance = CustomInstance.from_dict({"url": url, "type": instance_type, "token": token})
    if instance is None:
        _fail(f"Invalid instance URL: {url}")

    store = _store(ctx)
    existing = [i for i in get_custom_instances(store) if i.hostname != instance.hostname]
    store.set(
        StoreKey.CUSTOM_INSTANCES,
        [{"url": i.url, "type": i.type, "token": i.token} for i in [*existing, instance]],
    )
    click.echo(f"✓ Added {instance_type} instance: {instance.hostname}")


@instances.command("list")
@click.pass_context
def instances_list(ctx: click.Context) -> None:
    """List registered instances."""
    registered = get_custom_instances(_store(ctx))
    if not registered:
        click.echo("No custom instances registered.")
        return
    for instance in registered:
        badge = " (token)" if instance.token else ""
        click.echo(f"  {instance.hostname} [{instance.type}]{badge}")


if __name__ == "__main__":
    cli()
