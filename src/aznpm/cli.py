"""Main CLI entry point using Typer.

Wraps the AZURE-NPM chain lifecycle for operators and node bootstrap
scripts. The agent itself drives IptablesManager directly.
"""

import os
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from aznpm import __version__
from aznpm.core.audit import AuditEventType, AuditLogger, configure_audit_logger
from aznpm.core.config import DEFAULT_CONFIG_PATH, init_config
from aznpm.core.context import ExecutionContext, create_context
from aznpm.core.exceptions import IptablesError, NPMError
from aznpm.core.executor import CommandExecutor
from aznpm.core.output import console as app_console
from aznpm.services.chains import AZURE_CHAIN, get_all_default_rules
from aznpm.services.iptables import ForwardLinkAction, IptablesManager, IptEntry


app = typer.Typer(
    name="aznpm",
    help="Azure NPM iptables chain management.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        help="Preview iptables commands without executing them.",
        is_flag=True,
    ),
]

ForceOption = Annotated[
    bool,
    typer.Option(
        "--force",
        "-f",
        help="Overwrite existing files.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. -vv shows every iptables command.",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        Console().print(f"aznpm version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Azure NPM iptables chain management.

    [bold]Examples:[/bold]
        aznpm init --dry-run
        aznpm reconcile
        aznpm status
        aznpm uninit
    """


def handle_error(error: NPMError) -> None:
    """Handle an NPMError by printing formatted error and exiting."""
    app_console.error(error.message)

    if error.details:
        for detail in error.details:
            app_console.print(f"  [dim]{detail}[/dim]")

    if error.hint:
        app_console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def _check_root(ctx: ExecutionContext) -> None:
    """Check for root privileges."""
    if os.geteuid() != 0 and not ctx.dry_run:
        ctx.console.error("This operation requires root privileges")
        ctx.console.hint("Run with: sudo aznpm ...")
        raise typer.Exit(6)


def _get_iptables_manager(
    dry_run: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> tuple[ExecutionContext, IptablesManager]:
    """Create context and iptables manager from CLI options."""
    ctx = create_context(
        dry_run=dry_run,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )
    ipt_config = ctx.config.iptables
    executor = CommandExecutor(
        ctx,
        not_found_exit_code=ipt_config.not_found_exit_code,
        timeout=ipt_config.command_timeout,
    )
    return ctx, IptablesManager(ctx, executor, config=ipt_config)


def _get_audit_logger(ctx: ExecutionContext) -> AuditLogger:
    audit_config = ctx.config.audit
    return configure_audit_logger(
        log_path=audit_config.log_path,
        enabled=audit_config.enabled,
    )


# =============================================================================
# Lifecycle Commands
# =============================================================================

@app.command("init")
def init_command(
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Create the AZURE-NPM chains, link them into FORWARD, add default rules.

    Safe to run repeatedly; existing chains and rules are left alone.
    """
    try:
        ctx, iptables = _get_iptables_manager(dry_run, verbose, quiet, no_color, config)
        _check_root(ctx)
        audit = _get_audit_logger(ctx)

        with audit.correlation("init"):
            try:
                action = iptables.init_npm_chains()
            except NPMError as e:
                audit.log_failure(AuditEventType.CHAINS_INIT, AZURE_CHAIN, e.message)
                raise

            if ctx.dry_run:
                audit.log_dry_run(AuditEventType.CHAINS_INIT, AZURE_CHAIN)
            elif action is None:
                audit.log_partial(
                    AuditEventType.CHAINS_INIT,
                    AZURE_CHAIN,
                    f"not linked into {iptables.forward_chain}",
                )
            else:
                audit.log_success(
                    AuditEventType.CHAINS_INIT,
                    AZURE_CHAIN,
                    parameters={"forward_link": action.value},
                )

        if action is None:
            ctx.console.warn(
                f"{AZURE_CHAIN} is not linked into {iptables.forward_chain}; "
                "run 'aznpm reconcile' to retry"
            )
        ctx.console.success(f"{AZURE_CHAIN} chains initialized")

    except NPMError as e:
        handle_error(e)


@app.command("uninit")
def uninit_command(
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Unlink, flush and destroy every AZURE-NPM chain, old names included."""
    try:
        ctx, iptables = _get_iptables_manager(dry_run, verbose, quiet, no_color, config)
        _check_root(ctx)
        audit = _get_audit_logger(ctx)

        with audit.correlation("uninit"):
            try:
                flush_failures = iptables.uninit_npm_chains()
            except NPMError as e:
                audit.log_failure(AuditEventType.CHAINS_UNINIT, AZURE_CHAIN, e.message)
                raise

            if ctx.dry_run:
                audit.log_dry_run(AuditEventType.CHAINS_UNINIT, AZURE_CHAIN)
            elif flush_failures:
                audit.log_partial(
                    AuditEventType.CHAINS_UNINIT,
                    AZURE_CHAIN,
                    "some chains could not be flushed",
                    parameters={"flush_failures": flush_failures},
                )
            else:
                audit.log_success(AuditEventType.CHAINS_UNINIT, AZURE_CHAIN)

        if flush_failures:
            ctx.console.warn(f"Could not flush: {', '.join(flush_failures)}")
        ctx.console.success(f"{AZURE_CHAIN} chains removed")

    except NPMError as e:
        handle_error(e)


@app.command("reconcile")
def reconcile_command(
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Re-link AZURE-NPM after the peer chain in FORWARD if it drifted."""
    try:
        ctx, iptables = _get_iptables_manager(dry_run, verbose, quiet, no_color, config)
        _check_root(ctx)
        audit = _get_audit_logger(ctx)

        try:
            action = iptables.reconcile_forward_link()
        except NPMError as e:
            audit.log_failure(AuditEventType.FORWARD_LINK_RECONCILE, iptables.forward_chain, e.message)
            raise

        if action is not ForwardLinkAction.NONE and not ctx.dry_run:
            audit.log_success(
                AuditEventType.FORWARD_LINK_RECONCILE,
                iptables.forward_chain,
                message=f"{AZURE_CHAIN} jump {action.value}",
            )

        messages = {
            ForwardLinkAction.NONE: f"{AZURE_CHAIN} already follows {iptables.peer_chain}",
            ForwardLinkAction.INSERTED: f"{AZURE_CHAIN} linked into {iptables.forward_chain}",
            ForwardLinkAction.REPAIRED: f"{AZURE_CHAIN} moved after {iptables.peer_chain}",
        }
        ctx.console.success(messages[action])

    except NPMError as e:
        handle_error(e)


@app.command("status")
def status_command(
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Show FORWARD chain ordering and which default rules are installed."""
    try:
        ctx, iptables = _get_iptables_manager(verbose=verbose, no_color=no_color, config=config)
        _check_root(ctx)

        link = iptables.forward_link_status()
        ctx.console.summary(f"{link.forward_chain} chain", {
            f"{link.peer_chain} line": link.peer_line or "absent",
            f"{AZURE_CHAIN} line": link.entry_line or "absent",
            "Linked": link.linked,
            "Ordered": link.ordered,
        })

        rows = []
        for rule in get_all_default_rules():
            entry = IptEntry(chain=rule[0], specs=tuple(rule[1:]))
            # -C fails outright when the parent or target chain is gone
            try:
                installed = iptables.exists(entry)
            except IptablesError as e:
                ctx.console.verbose(f"{entry}: {e.message}")
                installed = False
            rows.append([
                rule[0],
                " ".join(rule[1:]),
                "[green]yes[/green]" if installed else "[red]no[/red]",
            ])
        ctx.console.table("Default rules", ["Chain", "Rule", "Installed"], rows)

        if not link.ordered:
            ctx.console.hint("Run 'aznpm reconcile' to fix the FORWARD chain order")
            raise typer.Exit(1)

    except NPMError as e:
        handle_error(e)


# =============================================================================
# Config Commands
# =============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Show the effective configuration, environment overrides applied."""
    ctx = create_context(no_color=no_color, config=config)

    try:
        app_config = ctx.config

        ctx.console.print()
        ctx.console.print(f"[bold]Configuration file:[/bold] {ctx.config_path}")
        ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
        ctx.console.print()

        ctx.console.yaml(app_config.config.to_yaml(), title="Configuration")

        overrides = app_config.overrides
        ctx.console.summary("Environment overrides", {
            "AZNPM_IPTABLES_COMMAND": overrides.iptables_command or "Not set",
            "AZNPM_PEER_CHAIN": overrides.peer_chain or "Not set",
            "AZNPM_LOCK_WAIT_SECONDS": overrides.lock_wait_seconds or "Not set",
        })

    except NPMError as e:
        handle_error(e)


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: ForceOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Write an example configuration file."""
    ctx = create_context(no_color=no_color, config=config)

    try:
        init_config(ctx.config_path, force=force)
        ctx.console.success(f"Configuration written to {ctx.config_path}")
    except NPMError as e:
        handle_error(e)
    except OSError as e:
        ctx.console.error(f"Cannot write {ctx.config_path}: {e}")
        raise typer.Exit(2)


if __name__ == "__main__":
    app()
