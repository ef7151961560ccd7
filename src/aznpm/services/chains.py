"""AZURE-NPM chain names, iptables flags and the default rule set.

Traffic through the NPM chains flows:

    FORWARD -> AZURE-NPM -> AZURE-NPM-INGRESS -> -INGRESS-PORT -> -INGRESS-FROM -> -INGRESS-DROPS
                         -> AZURE-NPM-EGRESS  -> -EGRESS-PORT  -> -EGRESS-TO    -> -EGRESS-DROPS
                         -> AZURE-NPM-ACCEPT

Policy rules insert at the head of the port/from/to chains. The two drops
chains end in a RETURN and only ever grow by append.
"""

# iptables flags
IPTABLES_WAIT_FLAG = "-w"
IPTABLES_APPEND_FLAG = "-A"
IPTABLES_INSERTION_FLAG = "-I"
IPTABLES_DELETION_FLAG = "-D"
IPTABLES_CHECK_FLAG = "-C"
IPTABLES_CHAIN_CREATION_FLAG = "-N"
IPTABLES_DESTROY_FLAG = "-X"
IPTABLES_FLUSH_FLAG = "-F"
IPTABLES_JUMP_FLAG = "-j"
IPTABLES_MODULE_FLAG = "-m"
IPTABLES_COMMENT_MODULE = "comment"
IPTABLES_COMMENT_FLAG = "--comment"
IPTABLES_MARK_MODULE = "mark"
IPTABLES_MARK_FLAG = "--mark"
IPTABLES_SET_MARK_FLAG = "--set-mark"

# Targets
IPTABLES_ACCEPT = "ACCEPT"
IPTABLES_RETURN = "RETURN"
IPTABLES_MARK = "MARK"

# Packet marks set by the policy chains
AZURE_CLEAR_MARK_HEX = "0x0"
AZURE_EGRESS_X_MARK_HEX = "0x1000"
AZURE_INGRESS_MARK_HEX = "0x2000"
AZURE_EGRESS_MARK_HEX = "0x3000"

# NPM chains
AZURE_CHAIN = "AZURE-NPM"
AZURE_ACCEPT_CHAIN = "AZURE-NPM-ACCEPT"
AZURE_INGRESS_CHAIN = "AZURE-NPM-INGRESS"
AZURE_EGRESS_CHAIN = "AZURE-NPM-EGRESS"
AZURE_INGRESS_PORT_CHAIN = "AZURE-NPM-INGRESS-PORT"
AZURE_INGRESS_FROM_CHAIN = "AZURE-NPM-INGRESS-FROM"
AZURE_EGRESS_PORT_CHAIN = "AZURE-NPM-EGRESS-PORT"
AZURE_EGRESS_TO_CHAIN = "AZURE-NPM-EGRESS-TO"
AZURE_INGRESS_DROPS_CHAIN = "AZURE-NPM-INGRESS-DROPS"
AZURE_EGRESS_DROPS_CHAIN = "AZURE-NPM-EGRESS-DROPS"

# Chains created by older agents; only ever flushed and destroyed.
# The misspelling is the name those agents used.
AZURE_TARGET_SETS_CHAIN = "AZURE-NPM-TARGET-SETS"
AZURE_INGRESS_WRONG_DROPS_CHAIN = "AZURE-NPM-INRGESS-DROPS"

AZURE_CHAIN_LIST: tuple[str, ...] = (
    AZURE_CHAIN,
    AZURE_ACCEPT_CHAIN,
    AZURE_INGRESS_CHAIN,
    AZURE_EGRESS_CHAIN,
    AZURE_INGRESS_PORT_CHAIN,
    AZURE_INGRESS_FROM_CHAIN,
    AZURE_EGRESS_PORT_CHAIN,
    AZURE_EGRESS_TO_CHAIN,
    AZURE_INGRESS_DROPS_CHAIN,
    AZURE_EGRESS_DROPS_CHAIN,
)

LEGACY_CHAIN_LIST: tuple[str, ...] = (
    AZURE_TARGET_SETS_CHAIN,
    AZURE_INGRESS_WRONG_DROPS_CHAIN,
)

DROPS_CHAINS: frozenset[str] = frozenset({
    AZURE_INGRESS_DROPS_CHAIN,
    AZURE_EGRESS_DROPS_CHAIN,
})


def is_drops_chain(chain: str) -> bool:
    """Check if chain is one of the two DROPS chains."""
    return chain in DROPS_CHAINS


def _comment(text: str) -> list[str]:
    return [IPTABLES_MODULE_FLAG, IPTABLES_COMMENT_MODULE, IPTABLES_COMMENT_FLAG, text]


def _jump(parent: str, target: str) -> list[str]:
    return [parent, IPTABLES_JUMP_FLAG, target]


def get_all_default_rules() -> list[list[str]]:
    """Return the default rules as [parent_chain, *specs] rows.

    Order matters: rules are appended, so earlier rows sit higher in
    their chain.
    """
    return [
        _jump(AZURE_CHAIN, AZURE_INGRESS_CHAIN),
        _jump(AZURE_CHAIN, AZURE_EGRESS_CHAIN),
        _jump(AZURE_CHAIN, AZURE_ACCEPT_CHAIN),
        [
            AZURE_ACCEPT_CHAIN,
            IPTABLES_JUMP_FLAG, IPTABLES_MARK,
            IPTABLES_SET_MARK_FLAG, AZURE_CLEAR_MARK_HEX,
            *_comment("CLEAR-AZURE-NPM-MARKS"),
        ],
        [
            AZURE_ACCEPT_CHAIN,
            IPTABLES_JUMP_FLAG, IPTABLES_ACCEPT,
            *_comment("ACCEPT-ALL"),
        ],
        _jump(AZURE_INGRESS_CHAIN, AZURE_INGRESS_PORT_CHAIN),
        [
            AZURE_INGRESS_CHAIN,
            IPTABLES_MODULE_FLAG, IPTABLES_MARK_MODULE,
            IPTABLES_MARK_FLAG, AZURE_INGRESS_MARK_HEX,
            IPTABLES_JUMP_FLAG, AZURE_ACCEPT_CHAIN,
            *_comment("ACCEPT-on-INGRESS-allow-mark"),
        ],
        _jump(AZURE_INGRESS_PORT_CHAIN, AZURE_INGRESS_FROM_CHAIN),
        _jump(AZURE_INGRESS_FROM_CHAIN, AZURE_INGRESS_DROPS_CHAIN),
        [
            AZURE_INGRESS_DROPS_CHAIN,
            IPTABLES_JUMP_FLAG, IPTABLES_RETURN,
            *_comment("RETURN-from-INGRESS-DROPS"),
        ],
        _jump(AZURE_EGRESS_CHAIN, AZURE_EGRESS_PORT_CHAIN),
        [
            AZURE_EGRESS_CHAIN,
            IPTABLES_MODULE_FLAG, IPTABLES_MARK_MODULE,
            IPTABLES_MARK_FLAG, AZURE_EGRESS_MARK_HEX,
            IPTABLES_JUMP_FLAG, AZURE_ACCEPT_CHAIN,
            *_comment("ACCEPT-on-EGRESS-and-INGRESS-allow-mark"),
        ],
        [
            AZURE_EGRESS_CHAIN,
            IPTABLES_MODULE_FLAG, IPTABLES_MARK_MODULE,
            IPTABLES_MARK_FLAG, AZURE_EGRESS_X_MARK_HEX,
            IPTABLES_JUMP_FLAG, AZURE_ACCEPT_CHAIN,
            *_comment("ACCEPT-on-EGRESS-allow-mark"),
        ],
        _jump(AZURE_EGRESS_PORT_CHAIN, AZURE_EGRESS_TO_CHAIN),
        _jump(AZURE_EGRESS_TO_CHAIN, AZURE_EGRESS_DROPS_CHAIN),
        [
            AZURE_EGRESS_DROPS_CHAIN,
            IPTABLES_JUMP_FLAG, IPTABLES_RETURN,
            *_comment("RETURN-from-EGRESS-DROPS"),
        ],
    ]


def describe_default_rule(rule: list[str]) -> str:
    """Name a default rule for error messages.

    Three-token rows are plain jumps and are named by their target;
    longer rows end in a comment, which names them.
    """
    if len(rule) == 3:
        return f"{rule[2]} to parent chain {rule[0]}"
    if len(rule) > 3:
        return f"{rule[-1]} to parent chain {rule[0]}"
    return "main chains with invalid rule length"
