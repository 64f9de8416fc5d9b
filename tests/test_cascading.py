"""Tests for cascading field resolution."""

from field_reconciler.cascading import (
    build_parent_proposal,
    child_field_id,
    is_parent_mapping_key,
    parent_field_name,
    parent_mapping_key,
    resolve_cascading,
)
from field_reconciler.models import AllowedOption, AllowedValuesDescriptor, ProposedState


def tree(mapping):
    return AllowedValuesDescriptor.cascading(
        [AllowedOption(label=parent) for parent in mapping],
        {parent: [AllowedOption(label=c) for c in children] for parent, children in mapping.items()},
    )


class TestResolveCascading:
    """Resolution of aggregated cascading descriptors."""

    def test_parents_and_dependencies(self):
        """Test that parents and dependencies are taken from the descriptor."""
        resolution = resolve_cascading(tree({"B": ["z", "y"], "A": ["x"], "C": ["y"]}))
        assert resolution.parents == ["A", "B", "C"]
        assert resolution.dependencies == {"A": ["x"], "B": ["y", "z"], "C": ["y"]}
        assert resolution.child_values == ["x", "y", "z"]
        assert resolution.problems == []

    def test_symmetry_holds(self):
        """Test that every parent has a dependency entry and the reverse."""
        descriptor = AllowedValuesDescriptor.cascading(
            [AllowedOption("A"), AllowedOption("B")],
            {"B": [AllowedOption("y")], "C": [AllowedOption("z")]},
        )
        resolution = resolve_cascading(descriptor)
        assert set(resolution.parents) == set(resolution.dependencies)
        assert resolution.dependencies["A"] == []

    def test_flat_descriptor_is_not_resolved(self):
        """Test that a flat descriptor does not resolve as cascading."""
        assert resolve_cascading(AllowedValuesDescriptor.flat([AllowedOption("A")])) is None
        assert resolve_cascading(AllowedValuesDescriptor()) is None

    def test_missing_children_is_a_problem(self):
        """Test that parents without any children are reported."""
        resolution = resolve_cascading(tree({"A": [], "B": []}))
        assert resolution.child_values == []
        assert any("child options" in reason for reason in resolution.problems)

    def test_missing_parents_is_a_problem(self):
        """Test that a descriptor without parents is reported."""
        resolution = resolve_cascading(AllowedValuesDescriptor.cascading([], {}))
        assert any("parent options" in reason for reason in resolution.problems)


def test_parent_keys():
    """Test building and parsing synthetic parent keys."""
    key = parent_mapping_key("customfield_10020")
    assert key == "cascading_parent:customfield_10020"
    assert is_parent_mapping_key(key)
    assert not is_parent_mapping_key("customfield_10020")
    assert child_field_id(key) == "customfield_10020"
    assert child_field_id("customfield_10020") == "customfield_10020"


def test_parent_field_name():
    """Test the name given to a synthetic parent field."""
    assert parent_field_name("Component") == "Component (Parent)"
    assert parent_field_name(None) is None
    assert parent_field_name("") is None


def test_build_parent_proposal():
    """Test that the parent proposal is a plain single-value enumeration."""
    child = ProposedState(
        name="Component",
        field_format="depending_enumeration",
        is_required=True,
        is_filter=True,
        is_for_all=False,
        is_multiple=True,
        possible_values=["x", "y"],
        value_dependencies={"A": ["x"], "B": ["y"]},
        default_value="x",
        tracker_ids=[1],
        project_ids=[3],
    )
    resolution = resolve_cascading(tree({"A": ["x"], "B": ["y"]}))

    parent = build_parent_proposal(child, resolution, "Component (Parent)")

    assert parent.name == "Component (Parent)"
    assert parent.field_format == "enumeration"
    assert parent.is_multiple is False
    assert parent.possible_values == ["A", "B"]
    assert parent.value_dependencies is None
    assert parent.default_value is None
    assert parent.tracker_ids == [1]
    assert parent.project_ids == [3]
    assert parent.is_required is True
