import pytest

from flowbot.flows import DOC, REGISTER, REGISTER_FLOW, SAMPLES, SAMPLES_NODE, WELCOME
from flowbot.services.flow_graph import (
    ConfigError,
    DuplicateTriggerError,
    FlowGraphBuilder,
    InvalidNodeError,
    TriggerKind,
    UnknownNodeError,
    action,
    answer,
)


def noop(ctx):
    return None


class TestBuiltGraph:
    def test_keywords_match_case_insensitively(self, graph):
        assert graph.resolve_keyword("HI") == WELCOME
        assert graph.resolve_keyword("  Hola ") == WELCOME
        assert graph.resolve_keyword("samples") == SAMPLES_NODE

    def test_keywords_are_exact_matches(self, graph):
        assert graph.resolve_keyword("hi there") is None

    def test_internal_node_is_not_globally_triggered(self, graph):
        assert graph.resolve_keyword("doc") is None
        assert graph.has_node(DOC)

    def test_events_resolve(self, graph):
        assert graph.resolve_event(REGISTER_FLOW) == REGISTER
        assert graph.resolve_event(SAMPLES) == SAMPLES_NODE
        assert graph.resolve_event("register_flow") is None

    def test_resolve_trigger_tries_keyword_then_event(self, graph):
        assert graph.resolve_trigger("Hello") == WELCOME
        assert graph.resolve_trigger(REGISTER_FLOW) == REGISTER
        assert graph.resolve_trigger("unknown") is None

    def test_branch_resolution_is_scoped_to_node(self, graph):
        assert graph.resolve_branch(WELCOME, "DOC") == DOC
        assert graph.resolve_branch(REGISTER, "doc") is None

    def test_list_messages_are_joined(self, graph):
        step = graph.node(WELCOME).steps[1]
        assert step.message.splitlines()[1] == "👉 *doc* to view the documentation"
        assert step.capture is True
        assert step.delay_ms == 800

    def test_unknown_node_raises(self, graph):
        with pytest.raises(UnknownNodeError):
            graph.node("missing")


class TestBuilderValidation:
    def test_duplicate_keyword_fails_on_registration(self):
        builder = FlowGraphBuilder()
        builder.add_node("a", [answer("A")], keywords=["Hi"])

        with pytest.raises(DuplicateTriggerError) as exc_info:
            builder.add_node("b", [answer("B")], keywords=["hi"])

        assert exc_info.value.kind == TriggerKind.KEYWORD
        assert exc_info.value.existing == "a"
        assert exc_info.value.duplicate == "b"

    def test_duplicate_event_fails_on_registration(self):
        builder = FlowGraphBuilder()
        builder.add_node("a", [answer("A")], events=["EVT"])

        with pytest.raises(DuplicateTriggerError) as exc_info:
            builder.add_node("b", [answer("B")], events=["EVT"])

        assert exc_info.value.kind == TriggerKind.EVENT

    def test_internal_nodes_may_share_keywords_with_global_ones(self):
        builder = FlowGraphBuilder()
        builder.add_node("menu", [answer("Pick", capture=True)], keywords=["menu"], branches=["inner"])
        builder.add_node("inner", [answer("Inner")], keywords=["menu"], internal=True)

        graph = builder.build()

        assert graph.resolve_keyword("menu") == "menu"
        assert graph.resolve_branch("menu", "menu") == "inner"

    def test_branch_to_unknown_node(self):
        builder = FlowGraphBuilder()
        builder.add_node("a", [answer("A", capture=True)], keywords=["a"], branches=["ghost"])

        with pytest.raises(UnknownNodeError):
            builder.build()

    def test_branches_need_a_final_capture(self):
        builder = FlowGraphBuilder()
        builder.add_node("inner", [answer("Inner")], keywords=["x"], internal=True)

        with pytest.raises(InvalidNodeError):
            builder.add_node("a", [answer("A")], keywords=["a"], branches=["inner"])

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"steps": [], "keywords": ["a"]},
            {"steps": [answer("A")]},
            {"steps": [answer("A")], "keywords": [""]},
            {"steps": [answer("A")], "events": ["E"], "internal": True},
            {"steps": [answer(capture=True, callback=noop)], "keywords": ["a"]},
            {"steps": [answer()], "keywords": ["a"]},
            {"steps": [answer("A")], "keywords": ["a", "A"]},
        ],
    )
    def test_invalid_nodes(self, kwargs):
        builder = FlowGraphBuilder()
        with pytest.raises(ConfigError):
            builder.add_node("a", **kwargs)

    def test_duplicate_node_id(self):
        builder = FlowGraphBuilder()
        builder.add_node("a", [answer("A")], keywords=["a"])
        with pytest.raises(InvalidNodeError):
            builder.add_node("a", [answer("B")], keywords=["b"])

    def test_action_step_is_valid(self):
        builder = FlowGraphBuilder()
        builder.add_node("a", [action(noop)], keywords=["a"])
        graph = builder.build()
        assert graph.node("a").steps[0].has_output is False
