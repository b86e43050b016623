"""Unit tests for the node type registry."""

from __future__ import annotations

from reavion.graph.registry import (
    NODE_DEFINITIONS,
    UNRECOGNIZED_LABEL,
    NodeCategory,
    NodeType,
    default_label,
    define,
    definitions_by_category,
    is_singleton,
)


class TestDefine:
    """Lookup of node type definitions."""

    def test_every_type_has_a_definition(self) -> None:
        for node_type in NodeType:
            assert define(node_type) is not None, node_type

    def test_lookup_by_string_and_enum_agree(self) -> None:
        assert define("loop") is define(NodeType.LOOP)

    def test_unknown_type_is_none(self) -> None:
        assert define("teleport") is None

    def test_loop_schema(self) -> None:
        loop = define(NodeType.LOOP)
        assert loop is not None
        assert loop.output_port_count == 2
        assert [o.template_key for o in loop.outputs_schema] == ["item", "index"]

    def test_start_has_no_inputs_end_has_no_outputs(self) -> None:
        assert define("start").input_port_count == 0
        assert define("end").output_port_count == 0

    def test_nodes_without_schema(self) -> None:
        assert define("navigate").outputs_schema is None


class TestHelpers:
    """Labels, singleton checks and palette grouping."""

    def test_default_label(self) -> None:
        assert default_label("x_scout") == "X Scout"

    def test_default_label_unknown(self) -> None:
        assert default_label("teleport") == UNRECOGNIZED_LABEL

    def test_singletons(self) -> None:
        assert is_singleton("start")
        assert is_singleton(NodeType.END)
        assert not is_singleton("loop")
        assert define("start").is_singleton

    def test_grouping_preserves_catalogue_order(self) -> None:
        grouped = definitions_by_category()
        control = [d.type for d in grouped[NodeCategory.CONTROL]]
        assert control[:2] == [NodeType.START, NodeType.END]
        assert sum(len(v) for v in grouped.values()) == len(NODE_DEFINITIONS)
