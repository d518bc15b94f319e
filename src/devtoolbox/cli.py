"""
Command-line interface for devtoolbox
"""

import shutil
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Tuple

import click
import yaml
from rich.console import Console
from rich.panel import Panel

from . import __version__, catalog
from .activation import run_background_cycle
from .config import ToolboxConfig, auto_extensions_disabled, config_path, load_config
from .container_manager import ContainerManager
from .diagnostics import browser_checks, fix_browser_integration, wrapper_checks
from .errors import DevToolboxError, RegistrationError, SelectionError
from .logging_config import resolve_level, setup_logging
from .orchestrator import InstallationRun, Orchestrator, RunResult, RunStatus
from .reconciler import ExtensionReconciler, InstallStatus
from .selection import (
    is_lsp_token,
    language_server_warning,
    parse_language_servers,
    parse_selection,
)
from .wrapper import Registrar, RegistrationStatus

console = Console()

_STATUS_ICONS = {True: "✅", False: "❌", None: "⚠️ "}


def _fail(error: DevToolboxError, code: int = 1):
    console.print(f"❌ {error.message}", style="bold red")
    if error.hint:
        console.print(f"💡 {error.hint}")
    sys.exit(code)


def _load_config(config_file: Optional[Path]) -> ToolboxConfig:
    try:
        return load_config(config_file)
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        console.print(f"❌ Invalid configuration: {e}", style="bold red")
        console.print(
            f"💡 Fix or remove {config_file or config_path()}, or pass --config <file>"
        )
        sys.exit(2)


def split_tokens(tokens: Tuple[str, ...]) -> Tuple[Optional[str], Optional[str]]:
    """Separate positional tokens into (selection, language servers)"""
    selection = [t for t in tokens if not is_lsp_token(t)]
    lsp = [t for t in tokens if is_lsp_token(t)]
    return (",".join(selection) or None, lsp[-1] if lsp else None)


def _prompt_list(label: str, options, default: str) -> str:
    console.print(f"[bold]{label}[/bold]: {', '.join(options)}, all")
    value = click.prompt("Comma-separated (or 'none')", default=default, show_default=True)
    return "" if value.strip().lower() in ("none", "-") else value


def interactive_selection() -> Tuple[str, Optional[str]]:
    """Ask for GUI IDEs, CLI IDEs and, when useful, language servers"""
    console.print(Panel.fit("🧰 Select IDEs to install", style="bold blue"))
    gui = _prompt_list("GUI IDEs", catalog.GUI_IDS, "zed")
    cli = _prompt_list("CLI IDEs", catalog.CLI_IDS, "neovim")
    lsp = None
    cli_selected = parse_selection(cli).ids if cli.strip() else ()
    if any(catalog.get(i).uses_language_servers for i in cli_selected):
        lsp = _prompt_list("Language servers", catalog.LANGUAGE_SERVERS, "none") or None
    return ",".join(part for part in (gui, cli) if part.strip()), lsp


def _print_failure_tips(config: ToolboxConfig, selection_arg: str, code):
    console.print()
    console.print(f"❌ Installation failed with exit code: {code}", style="bold red")
    console.print("💡 Troubleshooting tips:")
    console.print(f"   • Run with --verbose for more details: devtoolbox --verbose {selection_arg}")
    console.print("   • Check container status: distrobox list")
    console.print(
        f"   • Check container logs: podman logs $(podman ps -a -q --filter ancestor={config.image_name})"
    )
    console.print(f"   • Try --force to recreate everything: devtoolbox --force {selection_arg}")
    console.print(
        f"   • Manual export: distrobox enter {config.container_name} -- distrobox-export --app <app_name>"
    )


@contextmanager
def failure_tips(config: ToolboxConfig, selection_arg: str):
    """Print troubleshooting tips on any non-zero exit from the block"""
    try:
        yield
    except SystemExit as e:
        if e.code not in (0, None):
            _print_failure_tips(config, selection_arg, e.code)
        raise
    except Exception:
        _print_failure_tips(config, selection_arg, 1)
        raise


def _show_completion(config: ToolboxConfig, run: InstallationRun, result: RunResult):
    console.print()
    console.print(Panel.fit("🎉 IDE Installation Complete!", style="bold green"))
    console.print(f"📦 Installed IDEs: {run.selection.to_arg()}")
    console.print(f"🔧 Container: {config.container_name}")
    console.print(f"🖼️  Image: {config.image_name}")
    if result.status is RunStatus.PARTIAL_SUCCESS:
        console.print(f"⚠️  Not exported: {', '.join(result.failed_ids)}", style="yellow")
    if result.container_reused:
        console.print(
            "♻️  The existing container was kept and may predate this build; "
            "use --force to recreate it",
            style="yellow",
        )
    console.print()
    console.print("💡 Useful commands:")
    console.print(f"   distrobox enter {config.container_name}    # Enter container")
    console.print("   distrobox list                     # List containers")
    console.print("   podman images                      # List images")
    console.print()
    console.print("🔄 To reinstall or update:")
    console.print(f"   devtoolbox --force {run.selection.to_arg()}")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="devtoolbox")
@click.argument("tokens", nargs=-1)
@click.option("-f", "--force", is_flag=True, help="Force recreation of existing container")
@click.option("-n", "--no-export", "no_export", is_flag=True, help="Skip application export step")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("-d", "--debug", is_flag=True, help="Debug mode with detailed diagnostics")
@click.option("-i", "--interactive", is_flag=True, help="Interactive IDE selection")
@click.option(
    "--mount-containers",
    is_flag=True,
    help="Mount host Docker/Podman sockets (may interfere with export)",
)
@click.option("--test-browser", is_flag=True, help="Test browser integration and exit")
@click.option("--fix-browser", is_flag=True, help="Fix browser integration and exit")
@click.option("--name", default=None, help="Container name (default: devtoolbox)")
@click.option("--image", default=None, help="Image name (default: localhost/devtoolbox)")
@click.option(
    "--context",
    "context_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Build context containing the Containerfile",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: ~/.devtoolbox/config.yaml)",
)
def main(
    tokens,
    force: bool,
    no_export: bool,
    verbose: bool,
    debug: bool,
    interactive: bool,
    mount_containers: bool,
    test_browser: bool,
    fix_browser: bool,
    name: Optional[str],
    image: Optional[str],
    context_dir: Optional[Path],
    config_file: Optional[Path],
):
    """devtoolbox - Developer Toolbox Setup

    Builds a container with the selected IDEs, creates a distrobox from it
    and exports the applications to the host.

    \b
    TOKENS: [IDE1,IDE2,...] [LSP:server1,server2,...]
    IDEs: zed, vscode, windsurf, cursor, jetbrains, neovim, emacs, helix, all
    Language servers (neovim/helix): typescript, python, rust, go, clang,
    lua, bash, html, css, json, yaml, docker, markdown, all

    \b
    Examples:
        devtoolbox zed                              # Install Zed only
        devtoolbox neovim LSP:typescript,python     # Neovim with two servers
        devtoolbox --force all                      # Reinstall everything
        devtoolbox --no-export zed                  # Build and create only
    """
    verbose = verbose or debug
    setup_logging(resolve_level(verbose, debug))
    config = _load_config(config_file).with_overrides(
        container_name=name, image_name=image, context_dir=context_dir
    )

    if test_browser or fix_browser:
        sys.exit(_browser(config, fix_browser))

    selection_raw, lsp_raw = split_tokens(tokens)
    try:
        if interactive or not selection_raw:
            selection_raw, prompted_lsp = interactive_selection()
            lsp_raw = lsp_raw or prompted_lsp
        selection = parse_selection(selection_raw)
        language_servers = parse_language_servers(lsp_raw)
    except SelectionError as e:
        _fail(e)

    warning = language_server_warning(selection, language_servers)
    if warning:
        console.print(f"⚠️  {warning}", style="yellow")

    console.print(Panel.fit("🧰 Developer Toolbox Setup", style="bold blue"))
    console.print(f"📦 Installing IDEs: {selection.to_arg()}")
    if force:
        console.print("🔁 Force mode enabled - will recreate existing containers")
    if no_export:
        console.print("⏭️  Export disabled - will build and create container only")
    if debug:
        console.print("🔍 Debug mode enabled - detailed diagnostics will be shown")

    run = InstallationRun(
        selection=selection,
        language_servers=language_servers,
        force=force,
        skip_export=no_export,
        verbose=verbose,
        debug=debug,
        mount_containers=mount_containers,
    )
    with failure_tips(config, selection.to_arg()):
        result = Orchestrator(config, console=console).run(run)
        if result.error is not None and result.error.hint:
            console.print(f"💡 {result.error.hint}")
        if result.exit_code != 0:
            sys.exit(result.exit_code)
    _show_completion(config, run, result)


def _browser(config: ToolboxConfig, fix: bool) -> int:
    containers = ContainerManager()
    name = config.container_name
    if not containers.container_exists(name):
        console.print(f"❌ Container '{name}' not found", style="bold red")
        console.print("💡 Create it first: devtoolbox <ides>")
        return 1
    if fix:
        console.print("🔧 Installing xdg-open forwarder...")
        if not fix_browser_integration(containers, name):
            console.print("❌ Browser integration fix failed", style="bold red")
            return 1
        console.print("✅ Browser integration fix completed", style="green")
        console.print(f"💡 Test with: distrobox enter {name} -- xdg-open https://github.com")
        return 0

    checks = browser_checks(containers, name)
    for check in checks:
        console.print(f"{_STATUS_ICONS[check.ok]} {check.label}")
    if all(check.ok for check in checks):
        return 0
    console.print("💡 Try: devtoolbox --fix-browser")
    return 1


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="devtoolbox-ide")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: ~/.devtoolbox/config.yaml)",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.pass_context
def ide(ctx, config_file: Optional[Path], verbose: bool):
    """devtoolbox-ide - wrapped IDE management inside the container"""
    setup_logging(resolve_level(verbose))
    ctx.obj = _load_config(config_file).activation


@ide.command()
@click.argument("ide_name")
@click.argument("path", required=False, type=click.Path(path_type=Path))
@click.pass_obj
def register(activation, ide_name: str, path: Optional[Path]):
    """Wrap an IDE executable so extensions install on first launch"""
    ide_id = catalog.resolve(ide_name)
    if ide_id is None:
        console.print(f"❌ Unknown IDE: {ide_name}", style="bold red")
        sys.exit(1)
    if path is None:
        found = shutil.which(catalog.get(ide_id).binary)
        if not found:
            console.print(f"❌ {catalog.get(ide_id).binary} not found on PATH", style="bold red")
            sys.exit(1)
        path = Path(found)

    try:
        status = Registrar(activation).register(ide_id, path)
    except RegistrationError as e:
        _fail(e)

    if status is RegistrationStatus.ALREADY_REGISTERED:
        console.print(f"✅ {ide_id} is already wrapped ({path})")
    else:
        console.print(f"✅ Wrapped {ide_id}: {path}", style="green")


@ide.command()
@click.pass_obj
def reconcile(activation):
    """Install missing required extensions now"""
    if auto_extensions_disabled():
        console.print("⏭️  Automatic extension installation is disabled")
        return
    reports = ExtensionReconciler(activation).reconcile_all()
    if not reports:
        console.print("⚠️  No extension-capable IDEs found", style="yellow")
    failed = False
    for report in reports:
        if report.error:
            failed = True
            console.print(f"❌ {report.ide_id}: {report.error}", style="red")
            continue
        console.print(f"🧩 {report.ide_id}: {len(report.missing)} missing")
        for ext, status in report.results.items():
            failed = failed or status is InstallStatus.FAILED
            icon = "❌" if status is InstallStatus.FAILED else "✅"
            console.print(f"   {icon} {ext} ({status.value.replace('_', ' ')})")
    if failed:
        sys.exit(1)


@ide.command()
@click.pass_obj
def diagnose(activation):
    """Check wrapper and extension installation status"""
    console.print(Panel.fit("🩺 IDE Wrapper & Extension Diagnostics", style="bold cyan"))
    for section, checks in wrapper_checks(activation).items():
        console.print(f"\n[bold]{section}[/bold]")
        for check in checks:
            detail = f" - {check.detail}" if check.detail else ""
            console.print(f"  {_STATUS_ICONS[check.ok]} {check.label}{detail}")
    console.print("\n💡 Run extension setup manually: devtoolbox-ide reconcile")


@ide.command(hidden=True)
@click.argument("ide_name")
@click.pass_obj
def background(activation, ide_name: str):
    """Run one background extension cycle in the foreground"""
    log_path = run_background_cycle(catalog.resolve(ide_name) or ide_name, activation)
    if log_path is not None:
        console.print(f"📝 Log: {log_path}")
