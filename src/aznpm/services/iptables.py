"""Iptables service for the AZURE-NPM chains.

Provides:
- Idempotent rule operations (exists, add, delete)
- Idempotent chain lifecycle (create, flush, destroy)
- FORWARD chain ordering: AZURE-NPM is kept right after the peer
  service chain (KUBE-SERVICES)
- Chain set init and teardown, including chains left by older agents

The live kernel table is the only source of truth. Every decision that
depends on whether something exists is preceded by a fresh query; nothing
is cached between calls.

The operation (-A, -I, -D, ...) is an argument of every run() call rather
than state on the manager, so one IptablesManager may be shared between
threads. Serialization against other processes is left to the xtables
lock taken through -w.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from aznpm.core.config import IptablesConfig
from aznpm.core.context import ExecutionContext
from aznpm.core.exceptions import ExecutionError, IptablesError
from aznpm.core.executor import CommandExecutor, CommandResult
from aznpm.core.metrics import (
    ADD_IPTABLES_RULE_EXEC_TIME,
    NUM_IPTABLES_RULES,
    send_error_log_and_metric,
    start_new_timer,
)
from aznpm.core.validation import validate_position
from aznpm.services.chains import (
    AZURE_CHAIN,
    AZURE_CHAIN_LIST,
    IPTABLES_APPEND_FLAG,
    IPTABLES_CHAIN_CREATION_FLAG,
    IPTABLES_CHECK_FLAG,
    IPTABLES_DELETION_FLAG,
    IPTABLES_DESTROY_FLAG,
    IPTABLES_FLUSH_FLAG,
    IPTABLES_INSERTION_FLAG,
    IPTABLES_JUMP_FLAG,
    IPTABLES_WAIT_FLAG,
    LEGACY_CHAIN_LIST,
    describe_default_rule,
    get_all_default_rules,
    is_drops_chain,
)


# Subsystem id used as the error metric label
IPTM_ID = "iptm"

CHAIN_ALREADY_EXISTS = "Chain already exists"


class Operation(str, Enum):
    """iptables operation, mapped to its command-line flag."""
    APPEND = IPTABLES_APPEND_FLAG
    INSERT = IPTABLES_INSERTION_FLAG
    DELETE = IPTABLES_DELETION_FLAG
    CHECK = IPTABLES_CHECK_FLAG
    CREATE_CHAIN = IPTABLES_CHAIN_CREATION_FLAG
    DESTROY_CHAIN = IPTABLES_DESTROY_FLAG
    FLUSH_CHAIN = IPTABLES_FLUSH_FLAG


@dataclass(frozen=True)
class IptEntry:
    """One iptables rule, or a bare chain for chain operations.

    specs is an opaque, order-significant token sequence handed to
    iptables verbatim. An empty command or lock wait falls back to the
    manager's configured value.
    """
    chain: str
    specs: tuple[str, ...] = field(default_factory=tuple)
    command: str = ""
    lock_wait_seconds: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.specs, tuple):
            object.__setattr__(self, "specs", tuple(self.specs))

    def at_position(self, index: int) -> "IptEntry":
        """Return a copy whose specs start with a 1-based insert position."""
        validate_position(index)
        return replace(self, specs=(str(index),) + self.specs)

    def __str__(self) -> str:
        return " ".join((self.chain,) + self.specs)


class ForwardLinkAction(str, Enum):
    """What reconcile_forward_link changed."""
    NONE = "none"
    INSERTED = "inserted"
    REPAIRED = "repaired"


@dataclass(frozen=True)
class ForwardLinkStatus:
    """Positions of the peer and AZURE-NPM jumps in the forward chain.

    A line number of 0 means the jump is absent.
    """
    forward_chain: str
    peer_chain: str
    peer_line: int
    entry_line: int

    @property
    def linked(self) -> bool:
        return self.entry_line > 0

    @property
    def ordered(self) -> bool:
        """True when AZURE-NPM is linked and not ahead of the peer jump."""
        return self.linked and (self.peer_line <= 0 or self.peer_line < self.entry_line)


def parse_chain_line_number(listing: str, chain: str) -> int:
    """Find the line number of the first rule mentioning chain.

    Args:
        listing: Output of iptables -n --list <parent> --line-numbers
        chain: Chain name to look for (substring match)

    Returns:
        The rule number, or 0 if no numbered line mentions chain
    """
    for line in listing.splitlines():
        if chain not in line:
            continue
        parts = line.split(maxsplit=1)
        if parts and parts[0].isdigit():
            return int(parts[0])
    return 0


class IptablesManager:
    """Installs and removes the AZURE-NPM chains and rules.

    Three kinds of outcome come back from iptables:
    - success
    - not-found (exit code 1): turned into False or a no-op, never raised
    - anything else: logged with an error metric and raised as IptablesError
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        *,
        config: Optional[IptablesConfig] = None,
    ) -> None:
        """Initialize iptables manager.

        Args:
            ctx: Execution context
            executor: Command executor
            config: iptables settings (default: taken from ctx.config)
        """
        self.ctx = ctx
        self.executor = executor

        cfg = config if config is not None else ctx.config.iptables
        self.command = cfg.command
        self.lock_wait_seconds = str(cfg.lock_wait_seconds)
        self.forward_chain = cfg.forward_chain
        self.peer_chain = cfg.peer_chain

    # =========================================================================
    # Invocation
    # =========================================================================

    def run(self, operation: Operation, entry: IptEntry) -> CommandResult:
        """Run one iptables operation on entry.

        Builds <tool> -w <lock> <flag> <chain> [specs...]. Check operations
        are not logged since they run constantly and fail benignly.

        Returns:
            CommandResult; classification is left to the caller
        """
        cmd_name = entry.command or self.command
        lock_wait = entry.lock_wait_seconds or self.lock_wait_seconds

        command = [
            cmd_name,
            IPTABLES_WAIT_FLAG, lock_wait,
            operation.value, entry.chain,
            *entry.specs,
        ]

        result = self.executor.run(command, log=operation is not Operation.CHECK)

        if result.failed and operation is not Operation.CHECK:
            self.ctx.console.verbose(
                f"iptables returned {result.return_code} for [{result.display}]: {result.output}"
            )

        return result

    def _fail(
        self,
        result: CommandResult,
        chain: str,
        fmt: str,
        *args: object,
    ) -> IptablesError:
        """Report a failed command and build the error to raise."""
        message = send_error_log_and_metric(IPTM_ID, fmt, *args)
        return IptablesError(
            message,
            chain=chain,
            command=result.display,
            return_code=result.return_code,
            output=result.output,
        )

    # =========================================================================
    # Rule Operations
    # =========================================================================

    def exists(self, entry: IptEntry) -> bool:
        """Check if a rule exists.

        Returns:
            True if iptables -C matches, False if it reports not-found

        Raises:
            IptablesError: For any other failure; callers must not read an
                error as "does not exist"
        """
        if self.ctx.dry_run:
            return False

        result = self.run(Operation.CHECK, entry)
        if result.success:
            return True
        if result.not_found:
            return False

        raise self._fail(
            result, entry.chain,
            "Error: failed to check iptables rule [%s] with error code %d.",
            entry, result.return_code,
        )

    def add(self, entry: IptEntry) -> None:
        """Add a rule.

        Rules go to the head of their chain so the newest rule wins, except
        in the DROPS chains: those end in a RETURN and new drops must stay
        below it, so they are appended.

        Raises:
            IptablesError: If iptables fails
        """
        timer = start_new_timer()

        self.ctx.console.verbose(f"Adding iptables entry: {entry}")

        operation = Operation.APPEND if is_drops_chain(entry.chain) else Operation.INSERT
        result = self.run(operation, entry)
        if not result.success:
            raise self._fail(result, entry.chain, "Error: failed to create iptables rules.")

        # Nothing was installed
        if self.ctx.dry_run:
            return

        NUM_IPTABLES_RULES.inc()
        timer.stop_and_record(ADD_IPTABLES_RULE_EXEC_TIME)

    def delete(self, entry: IptEntry) -> bool:
        """Remove a rule if present.

        Returns:
            True if a rule was deleted, False if it was not there

        Raises:
            IptablesError: If the check or the delete fails
        """
        self.ctx.console.verbose(f"Deleting iptables entry: {entry}")

        if not self.exists(entry):
            return False

        result = self.run(Operation.DELETE, entry)
        if not result.success:
            raise self._fail(result, entry.chain, "Error: failed to delete iptables rules.")

        NUM_IPTABLES_RULES.dec()
        return True

    # =========================================================================
    # Chain Operations
    # =========================================================================

    def create_chain(self, chain: str) -> bool:
        """Create a chain.

        Returns:
            True if created, False if it already existed
        """
        result = self.run(Operation.CREATE_CHAIN, IptEntry(chain=chain))
        if result.success:
            return True
        if result.not_found or CHAIN_ALREADY_EXISTS in result.output:
            self.ctx.console.verbose(f"Chain already exists {chain}.")
            return False

        raise self._fail(result, chain, "Error: failed to create iptables chain %s.", chain)

    def destroy_chain(self, chain: str) -> bool:
        """Destroy an empty chain.

        Returns:
            True if destroyed, False if it did not exist
        """
        result = self.run(Operation.DESTROY_CHAIN, IptEntry(chain=chain))
        if result.success:
            return True
        if result.not_found:
            self.ctx.console.verbose(f"Chain doesn't exist {chain}.")
            return False

        raise self._fail(result, chain, "Error: failed to delete iptables chain %s.", chain)

    def flush_chain(self, chain: str) -> bool:
        """Remove every rule from a chain.

        Returns:
            True if flushed, False if the chain did not exist
        """
        result = self.run(Operation.FLUSH_CHAIN, IptEntry(chain=chain))
        if result.success:
            return True
        if result.not_found:
            return False

        raise self._fail(result, chain, "Error: failed to flush iptables chain %s.", chain)

    def add_all_chains(self) -> None:
        """Create every NPM chain. Stops at the first failure, no rollback."""
        for chain in AZURE_CHAIN_LIST:
            self.create_chain(chain)

    def get_chain_line_number(self, chain: str, parent_chain: str) -> int:
        """Line number of the first rule in parent_chain mentioning chain.

        Returns:
            The line number, or 0 if there is none or parent_chain is missing

        Raises:
            IptablesError: If the listing itself fails
        """
        command = [self.command, "-t", "filter", "-n", "--list", parent_chain, "--line-numbers"]
        result = self.executor.run(command, log=False)

        if result.not_found:
            return 0
        if result.failed:
            raise self._fail(
                result, parent_chain,
                "Error: failed to list iptables chain %s with error code %d.",
                parent_chain, result.return_code,
            )

        return parse_chain_line_number(result.output, chain)

    # =========================================================================
    # Forward Chain Ordering
    # =========================================================================

    def _forward_link_entry(self) -> IptEntry:
        return IptEntry(
            chain=self.forward_chain,
            specs=(IPTABLES_JUMP_FLAG, AZURE_CHAIN),
        )

    def reconcile_forward_link(self) -> ForwardLinkAction:
        """Make sure FORWARD jumps to AZURE-NPM right after the peer jump.

        Packets must pass the peer service chain before NPM policy is
        applied; a jump ahead of the peer's silently bypasses it. Safe to
        run repeatedly: once ordered, no rule is inserted or deleted.

        Returns:
            What was changed

        Raises:
            IptablesError: If any query or mutation fails
        """
        self.create_chain(AZURE_CHAIN)

        entry = self._forward_link_entry()

        # 0 when the peer is not installed
        peer_line = self.get_chain_line_number(self.peer_chain, self.forward_chain)
        index = peer_line + 1

        if not self.exists(entry):
            result = self.run(Operation.INSERT, entry.at_position(index))
            if not result.success:
                raise self._fail(
                    result, self.forward_chain,
                    "Error: failed to add %s chain to %s chain.",
                    AZURE_CHAIN, self.forward_chain,
                )
            return ForwardLinkAction.INSERTED

        entry_line = self.get_chain_line_number(AZURE_CHAIN, self.forward_chain)

        if peer_line < entry_line:
            return ForwardLinkAction.NONE
        if peer_line <= 0:
            return ForwardLinkAction.NONE

        self.ctx.console.warn(
            f"{AZURE_CHAIN} is at line {entry_line} of {self.forward_chain}, ahead of "
            f"{self.peer_chain} at line {peer_line}; re-adding it"
        )

        result = self.run(Operation.DELETE, entry)
        if not result.success:
            raise self._fail(
                result, self.forward_chain,
                "Error: failed to delete %s chain from %s chain with error code %d.",
                AZURE_CHAIN, self.forward_chain, result.return_code,
            )

        # The deleted jump sat above the peer, so the peer moved up one row.
        # Assumes exactly one row was removed.
        if index > 1:
            index -= 1

        result = self.run(Operation.INSERT, entry.at_position(index))
        if not result.success:
            raise self._fail(
                result, self.forward_chain,
                "Error: failed to add %s chain to %s chain with error code %d.",
                AZURE_CHAIN, self.forward_chain, result.return_code,
            )

        return ForwardLinkAction.REPAIRED

    def forward_link_status(self) -> ForwardLinkStatus:
        """Read-only view of the forward chain ordering."""
        return ForwardLinkStatus(
            forward_chain=self.forward_chain,
            peer_chain=self.peer_chain,
            peer_line=self.get_chain_line_number(self.peer_chain, self.forward_chain),
            entry_line=self.get_chain_line_number(AZURE_CHAIN, self.forward_chain),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def init_npm_chains(self) -> Optional[ForwardLinkAction]:
        """Create the NPM chains, link them into FORWARD, add default rules.

        Not transactional: on failure, whatever was created stays and
        calling this again is the recovery path. A failure to link into
        FORWARD is reported but does not stop the default rules from
        being installed.

        Returns:
            The forward link action, or None if linking failed
        """
        self.ctx.console.step(f"Initializing {AZURE_CHAIN} chains")

        self.add_all_chains()

        action: Optional[ForwardLinkAction] = None
        try:
            action = self.reconcile_forward_link()
        except ExecutionError as e:
            send_error_log_and_metric(
                IPTM_ID,
                "Error: failed to add %s chain to %s chain. %s",
                AZURE_CHAIN, self.forward_chain, e.message,
            )

        self.add_all_rules_to_chains()

        return action

    def add_all_rules_to_chains(self) -> int:
        """Append every default rule that is not already present.

        Returns:
            Number of rules added

        Raises:
            IptablesError: Naming the rule and parent chain that failed
        """
        added = 0
        for rule in get_all_default_rules():
            entry = IptEntry(chain=rule[0], specs=tuple(rule[1:]))
            if self.exists(entry):
                continue

            result = self.run(Operation.APPEND, entry)
            if not result.success:
                raise self._fail(
                    result, rule[0],
                    "Error: failed to add %s",
                    describe_default_rule(rule),
                )
            added += 1

        return added

    def uninit_npm_chains(self) -> list[str]:
        """Unlink, flush and destroy the NPM chains, legacy ones included.

        Flushing is best-effort: a failure is reported and the remaining
        chains are still flushed. Destroying stops at the first failure,
        since a chain that survives flush-then-destroy needs attention.

        Returns:
            Chains whose flush failed

        Raises:
            IptablesError: If unlinking or destroying fails
        """
        self.ctx.console.step(f"Removing {AZURE_CHAIN} chains")

        entry = self._forward_link_entry()
        result = self.run(Operation.DELETE, entry)
        if result.failed:
            raise self._fail(
                result, self.forward_chain,
                "Error: failed to delete %s chain from %s chain.",
                AZURE_CHAIN, self.forward_chain,
            )

        all_chains = AZURE_CHAIN_LIST + LEGACY_CHAIN_LIST

        flush_failures = []
        for chain in all_chains:
            try:
                self.flush_chain(chain)
            except IptablesError:
                flush_failures.append(chain)
            except ExecutionError as e:
                send_error_log_and_metric(
                    IPTM_ID, "Error: failed to flush iptables chain %s. %s", chain, e.message,
                )
                flush_failures.append(chain)

        for chain in all_chains:
            self.destroy_chain(chain)

        return flush_failures
