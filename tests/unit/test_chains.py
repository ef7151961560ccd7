"""Unit tests for the NPM chain set and default rules."""

from aznpm.services.chains import (
    AZURE_ACCEPT_CHAIN,
    AZURE_CHAIN,
    AZURE_CHAIN_LIST,
    AZURE_EGRESS_DROPS_CHAIN,
    AZURE_INGRESS_DROPS_CHAIN,
    AZURE_INGRESS_PORT_CHAIN,
    LEGACY_CHAIN_LIST,
    describe_default_rule,
    get_all_default_rules,
    is_drops_chain,
)
from aznpm.core.validation import validate_chain_name


class TestChainSet:
    """Tests for chain name constants."""

    def test_ten_unique_chains(self):
        assert len(AZURE_CHAIN_LIST) == 10
        assert len(set(AZURE_CHAIN_LIST)) == 10

    def test_entry_chain_first(self):
        """AZURE-NPM is created first so the FORWARD jump has a target."""
        assert AZURE_CHAIN_LIST[0] == AZURE_CHAIN

    def test_names_are_valid(self):
        for chain in AZURE_CHAIN_LIST + LEGACY_CHAIN_LIST:
            assert validate_chain_name(chain) == chain

    def test_legacy_chains_not_created(self):
        assert not set(LEGACY_CHAIN_LIST) & set(AZURE_CHAIN_LIST)

    def test_is_drops_chain(self):
        assert is_drops_chain(AZURE_INGRESS_DROPS_CHAIN)
        assert is_drops_chain(AZURE_EGRESS_DROPS_CHAIN)
        assert not is_drops_chain(AZURE_INGRESS_PORT_CHAIN)
        assert not is_drops_chain("AZURE-NPM-INRGESS-DROPS")


class TestDefaultRules:
    """Tests for get_all_default_rules."""

    def test_sixteen_rules(self):
        assert len(get_all_default_rules()) == 16

    def test_parents_are_npm_chains(self):
        for rule in get_all_default_rules():
            assert rule[0] in AZURE_CHAIN_LIST

    def test_no_duplicates(self):
        rules = [tuple(r) for r in get_all_default_rules()]
        assert len(set(rules)) == len(rules)

    def test_entry_chain_order(self):
        """AZURE-NPM should dispatch to ingress, then egress, then accept."""
        targets = [r[2] for r in get_all_default_rules() if r[0] == AZURE_CHAIN]
        assert targets == ["AZURE-NPM-INGRESS", "AZURE-NPM-EGRESS", AZURE_ACCEPT_CHAIN]

    def test_accept_chain_clears_mark_then_accepts(self):
        rules = [r for r in get_all_default_rules() if r[0] == AZURE_ACCEPT_CHAIN]
        assert rules[0][1:5] == ["-j", "MARK", "--set-mark", "0x0"]
        assert rules[1][1:3] == ["-j", "ACCEPT"]

    def test_drops_chains_return(self):
        for chain in (AZURE_INGRESS_DROPS_CHAIN, AZURE_EGRESS_DROPS_CHAIN):
            rules = [r for r in get_all_default_rules() if r[0] == chain]
            assert len(rules) == 1
            assert rules[0][1:3] == ["-j", "RETURN"]

    def test_marks(self):
        tokens = [t for r in get_all_default_rules() for t in r]
        for mark in ("0x0", "0x1000", "0x2000", "0x3000"):
            assert mark in tokens

    def test_fresh_list_each_call(self):
        """Callers may mutate the result without affecting later calls."""
        rules = get_all_default_rules()
        rules[0].append("junk")
        assert "junk" not in get_all_default_rules()[0]


class TestDescribeDefaultRule:
    """Tests for describe_default_rule."""

    def test_jump(self):
        assert describe_default_rule([AZURE_CHAIN, "-j", AZURE_ACCEPT_CHAIN]) == (
            "AZURE-NPM-ACCEPT to parent chain AZURE-NPM"
        )

    def test_commented_rule(self):
        rule = [AZURE_ACCEPT_CHAIN, "-j", "ACCEPT", "-m", "comment", "--comment", "ACCEPT-ALL"]
        assert describe_default_rule(rule) == "ACCEPT-ALL to parent chain AZURE-NPM-ACCEPT"

    def test_short_rule(self):
        assert describe_default_rule([AZURE_CHAIN]) == "main chains with invalid rule length"
