"""Command-line interface for ctxpack."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from ctxpack import __version__
from ctxpack.config import (
    CATALOG_DB_FILE,
    ProjectConfig,
    find_project_root,
    get_ai_dir,
    load_config,
    save_config,
    set_config_value,
)
from ctxpack.exceptions import CtxPackError
from ctxpack.ui.console import Console

console = Console()


def _get_project_root(path: str | None = None) -> Path:
    """Find the project root or error."""
    if path:
        root = Path(path).resolve()
        if not root.exists():
            console.error(f"Path does not exist: {path}")
            sys.exit(1)
        return root

    root = find_project_root()
    if root is None:
        console.error(
            "No ctxpack project found. Run 'ctxpack init' first, "
            "or specify a path with --path."
        )
        sys.exit(1)
    return root


def _load_store(root: Path):
    """Load the installed packs into a store, plus the catalog they came from."""
    from ctxpack.packs.catalog import PackCatalog
    from ctxpack.packs.store import PackStore

    db_path = get_ai_dir(root) / CATALOG_DB_FILE
    if not db_path.exists():
        console.error("No pack catalog found. Run 'ctxpack init' first.")
        sys.exit(1)
    catalog = PackCatalog(db_path)
    try:
        snapshot = catalog.load()
    except CtxPackError as e:
        catalog.close()
        console.show_error(e)
        sys.exit(1)
    store = PackStore(snapshot.packs if snapshot is not None else ())
    return store, catalog


def _configure_logging(config: ProjectConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("ctxpack").setLevel(level)


@click.group()
@click.version_option(version=__version__, prog_name="ctxpack")
@click.option("--verbose", "-v", is_flag=True, help="Log engine decisions to stderr.")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """ctxpack - versioned, composable behavioral context for AI coding agents."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.pass_context
def init(ctx: click.Context, path: str | None):
    """Initialize ctxpack for a project (creates .ai/ctxpack.json and the catalog)."""
    from ctxpack.packs.catalog import PackCatalog
    from ctxpack.packs.store import PackSnapshot

    root = Path(path or ".").resolve()
    if not root.exists():
        console.error(f"Path does not exist: {root}")
        sys.exit(1)

    console.banner()
    console.info(f"Initializing ctxpack for: {root}")

    config = load_config(root)
    config.name = root.name
    config.root_path = str(root)
    save_config(root, config)
    _configure_logging(config, ctx.obj["verbose"])
    console.success("Configuration saved")

    catalog = PackCatalog(get_ai_dir(root) / CATALOG_DB_FILE)
    if catalog.load() is None:
        catalog.save(PackSnapshot())
    catalog.close()
    console.success("Pack catalog ready in .ai/")


@main.command()
@click.argument("manifest", type=click.Path(exists=True))
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option(
    "--scope", "-s",
    type=click.Choice(["global", "project", "local"]),
    default=None,
    help="Scope layer to mount the pack at (default: manifest value or project).",
)
@click.option("--dependency", is_flag=True, help="Install as a dependency, not a root pack.")
@click.pass_context
def install(ctx: click.Context, manifest: str, path: str | None, scope: str | None, dependency: bool):
    """Install a pack from a pack.json manifest (or a directory holding one)."""
    from ctxpack.packs.manifest import load_manifest

    root = _get_project_root(path)
    _configure_logging(load_config(root), ctx.obj["verbose"])
    store, catalog = _load_store(root)
    try:
        pack = load_manifest(manifest)
        snapshot = store.install(pack, scope=scope, direct=False if dependency else None)
        catalog.save(snapshot)
    except CtxPackError as e:
        console.show_error(e)
        sys.exit(1)
    finally:
        catalog.close()

    record = snapshot.get(pack.identity, pack.version)
    console.success(
        f"Installed {record.ref} at {record.scope.value} scope "
        f"({len(record.units)} unit(s), {record.total_size:,} bytes)"
    )


@main.command()
@click.argument("identity")
@click.option("--version", "version", default=None, help="Remove only this version.")
@click.option("--path", "-p", default=None, help="Path to the project root.")
def remove(identity: str, version: str | None, path: str | None):
    """Remove an installed pack."""
    root = _get_project_root(path)
    store, catalog = _load_store(root)
    try:
        snapshot = store.remove(identity, version)
        catalog.save(snapshot)
    except (CtxPackError, ValueError) as e:
        console.error(str(e))
        sys.exit(1)
    finally:
        catalog.close()
    console.success(f"Removed {identity}" + (f"@{version}" if version else ""))


@main.command("list")
@click.option("--path", "-p", default=None, help="Path to the project root.")
def list_packs(path: str | None):
    """List installed packs."""
    root = _get_project_root(path)
    store, catalog = _load_store(root)
    records = catalog.list_records()
    catalog.close()
    if not records:
        console.warning("No packs installed")
        return
    console.show_packs(records)


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--root", "roots", multiple=True, help="Root request, e.g. acme/base@^1.0 (repeatable).")
@click.pass_context
def resolve(ctx: click.Context, path: str | None, roots: tuple[str, ...]):
    """Resolve installed packs to one version per identity."""
    from ctxpack.resolver.resolver import DependencyResolver

    root = _get_project_root(path)
    _configure_logging(load_config(root), ctx.obj["verbose"])
    store, catalog = _load_store(root)
    catalog.close()
    try:
        result = DependencyResolver().resolve(store.snapshot(), list(roots) or None)
    except (CtxPackError, ValueError) as e:
        console.show_error(e)
        sys.exit(1)
    console.show_resolution(result)


# =========================================================================
# Context assembly
# =========================================================================

@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--budget", "-b", default=None, type=int, help="Budget ceiling in bytes.")
@click.option(
    "--scores", type=click.Path(exists=True), default=None,
    help="JSON file mapping unit ids (org/name#key) to relevance scores.",
)
@click.option("--best-effort", is_flag=True, help="Arbitrate same-scope conflicts by install order.")
@click.option(
    "--policy", type=click.Choice(["first_fit", "prefix"]), default=None,
    help="Allocation policy for optional units.",
)
@click.option(
    "--scope", "scopes", multiple=True,
    type=click.Choice(["global", "project", "local"]),
    help="Enabled scope layers (repeatable, default: all configured).",
)
@click.option("--root", "roots", multiple=True, help="Root request (repeatable).")
@click.option("--summary", is_flag=True, help="Show a summary instead of the document.")
@click.option("--json", "as_json", is_flag=True, help="Emit the assembly as JSON.")
@click.pass_context
def assemble(
    ctx: click.Context, path: str | None, budget: int | None, scores: str | None,
    best_effort: bool, policy: str | None, scopes: tuple[str, ...],
    roots: tuple[str, ...], summary: bool, as_json: bool,
):
    """Assemble the budgeted context document for the installed packs."""
    from ctxpack.context.cache import AssemblyCache
    from ctxpack.context.engine import ContextAssembler

    root = _get_project_root(path)
    config = load_config(root)
    _configure_logging(config, ctx.obj["verbose"])
    store, catalog = _load_store(root)
    catalog.close()

    overrides: dict = {}
    if scores:
        try:
            overrides["scores"] = json.loads(Path(scores).read_text())
        except json.JSONDecodeError as e:
            console.error(f"Invalid scores file: {e}")
            sys.exit(1)
    if best_effort:
        overrides["best_effort"] = True
    if policy:
        overrides["policy"] = policy
    if scopes:
        overrides["scopes"] = scopes
    if roots:
        overrides["roots"] = roots

    assembler = ContextAssembler(
        store, cache=AssemblyCache(config.cache.max_entries), config=config.engine
    )
    try:
        query = assembler.query(budget, **overrides)
        output = assembler.assemble(query)
    except (CtxPackError, ValueError) as e:
        console.show_error(e)
        sys.exit(1)
    finally:
        assembler.close()

    if as_json:
        click.echo(json.dumps(output.model_dump(mode="json"), indent=2))
    elif summary:
        console.show_assembly(output, hit=assembler.last_hit)
        click.echo(output.summary())
    else:
        click.echo(output.render())


# =========================================================================
# Config Management
# =========================================================================

@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=None, help="Path to the project root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str | None):
    """Manage ctxpack configuration."""
    root = _get_project_root(path)
    config = load_config(root)

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: ctxpack config get <key>")
            sys.exit(1)
        data = config.model_dump()
        for part in key.split("."):
            if isinstance(data, dict) and part in data:
                data = data[part]
            else:
                console.error(f"Unknown key: {key}")
                sys.exit(1)
        console.console.print(f"{key} = {data}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: ctxpack config set <key> <value>")
            sys.exit(1)
        try:
            try:
                parsed_value = json.loads(value)
            except json.JSONDecodeError:
                parsed_value = value

            config = set_config_value(config, key, parsed_value)
            save_config(root, config)
            console.success(f"Set {key} = {parsed_value}")
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except CtxPackError as e:
            console.error(str(e))
            sys.exit(1)


if __name__ == "__main__":
    main()
