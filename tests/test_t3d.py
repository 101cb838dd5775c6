"""Tests for the T3D object tree."""

from __future__ import annotations

from pathlib import Path

import pytest

from bpstudio.sync.document import StructuralDocument
from bpstudio.sync.t3d import (
    MutationKind,
    T3DDocument,
    T3DMutation,
    T3DObject,
    parse_t3d,
)

SAMPLE = (Path(__file__).parent.parent / "bpstudio" / "config" / "sample.t3d").read_text()

NESTED = """\
Begin Object Class=/Script/BlueprintGraph.K2Node_CallFunction Name="K2Node_CallFunction_0"
  Begin Object Class=/Script/Engine.EdGraphPin Name="Pin_0"
    PinName="self"
  End Object
  NodePosX=320
  NodePosY=16
End Object
"""


# ── Parsing ──────────────────────────────────────────────────────


class TestParse:
    def test_sample_node(self):
        graph = parse_t3d(SAMPLE)
        node = graph.find("K2Node_Event_0")
        assert node is not None
        assert node.object_class == "/Script/BlueprintGraph.K2Node_Event"
        assert node.get_property("bOverrideFunction") == "True"
        assert len(node.pins) == 2

    def test_sample_round_trips_exactly(self):
        assert parse_t3d(SAMPLE).to_text() == SAMPLE.rstrip("\n")

    def test_nested_objects_and_indent_normalized(self):
        graph = parse_t3d(NESTED)
        call = graph.find("K2Node_CallFunction_0")
        assert [c.name for c in call.children] == ["Pin_0"]
        assert graph.find("Pin_0").parent is call
        assert graph.to_text().splitlines()[1] == '   Begin Object Class=/Script/Engine.EdGraphPin Name="Pin_0"'

    def test_unterminated_block_is_closed(self):
        graph = parse_t3d('Begin Object Name="A"\n   NodePosX=1')
        assert graph.to_text() == 'Begin Object Name="A"\n   NodePosX=1\nEnd Object'

    def test_stray_lines_are_kept(self):
        graph = parse_t3d("garbage\nEnd Object\nBegin Object Name=\"A\"\nEnd Object")
        assert graph.to_text().splitlines()[:2] == ["garbage", "End Object"]

    def test_empty_text(self):
        graph = parse_t3d("")
        assert graph.children == []
        assert graph.to_text() == ""

    def test_walk_is_depth_first(self):
        names = [o.name for o in parse_t3d(NESTED + SAMPLE).walk()]
        assert names == ["K2Node_CallFunction_0", "Pin_0", "K2Node_Event_0"]


# ── Editing and notifications ────────────────────────────────────


class TestMutations:
    def test_set_property_notifies(self):
        graph = parse_t3d(SAMPLE)
        seen: list[T3DMutation] = []
        graph.subscribe(seen.append)

        graph.find("K2Node_Event_0").set_property("NodePosX", 64)

        assert len(seen) == 1
        assert seen[0].kind is MutationKind.PROPERTY
        assert seen[0].key == "NodePosX"
        assert "   NodePosX=64" in graph.to_text()

    def test_setting_same_value_is_silent(self):
        graph = parse_t3d(SAMPLE)
        seen: list[T3DMutation] = []
        graph.subscribe(seen.append)
        graph.find("K2Node_Event_0").set_property("NodePosX", 0)
        assert seen == []

    def test_move_is_one_notification(self):
        graph = parse_t3d(SAMPLE)
        seen: list[T3DMutation] = []
        graph.subscribe(seen.append)

        graph.find("K2Node_Event_0").move(100, 200)

        assert len(seen) == 1
        assert seen[0].kind is MutationKind.BATCH
        assert seen[0].count == 2

    def test_batch_folds_changes(self):
        graph = parse_t3d(NESTED)
        seen: list[T3DMutation] = []
        graph.subscribe(seen.append)
        node = graph.find("K2Node_CallFunction_0")
        with graph.batch():
            node.set_property("NodePosX", 1)
            node.remove_property("NodePosY")
            node.add_line('CustomProperties Pin (PinName="exec")')
        assert [m.count for m in seen] == [3]

    def test_add_and_remove_object(self):
        graph = parse_t3d(SAMPLE)
        seen: list[T3DMutation] = []
        graph.subscribe(seen.append)

        comment = graph.add_object(T3DObject('Class=/Script/UnrealEd.EdGraphNode_Comment Name="C"'))
        assert graph.find("C") is comment
        graph.remove_object(comment)

        assert graph.find("C") is None
        assert [m.kind for m in seen] == [MutationKind.STRUCTURE, MutationKind.STRUCTURE]

    def test_remove_foreign_object_raises(self):
        with pytest.raises(ValueError, match="not a child"):
            parse_t3d(SAMPLE).remove_object(T3DObject('Name="X"'))

    def test_header_edit_is_attribute_change(self):
        graph = parse_t3d(SAMPLE)
        seen: list[T3DMutation] = []
        graph.subscribe(seen.append)
        node = graph.find("K2Node_Event_0")
        node.header = node.header.replace("K2Node_Event_0", "K2Node_Event_1")
        assert seen[0].kind is MutationKind.ATTRIBUTE
        assert graph.find("K2Node_Event_1") is node

    def test_unsubscribe_stops_notifications(self):
        graph = parse_t3d(SAMPLE)
        seen: list[T3DMutation] = []
        unsubscribe = graph.subscribe(seen.append)
        unsubscribe()
        graph.find("K2Node_Event_0").move(5, 5)
        assert seen == []

    def test_failing_subscriber_does_not_block_others(self):
        graph = parse_t3d(SAMPLE)
        seen: list[T3DMutation] = []

        def boom(_mutation):
            raise RuntimeError("boom")

        graph.subscribe(boom)
        graph.subscribe(seen.append)
        graph.find("K2Node_Event_0").set_property("NodePosY", 9)
        assert len(seen) == 1

    def test_disposed_graph_refuses_use(self):
        graph = parse_t3d(SAMPLE)
        graph.dispose()
        with pytest.raises(RuntimeError):
            graph.to_text()
        with pytest.raises(RuntimeError):
            graph.find("K2Node_Event_0").set_property("NodePosX", 1)


class TestT3DDocument:
    def test_satisfies_protocol(self):
        assert isinstance(T3DDocument(), StructuralDocument)

    def test_construct_serialize_observe_destroy(self):
        doc = T3DDocument()
        handle = doc.construct(SAMPLE)
        seen: list[T3DMutation] = []
        unsubscribe = doc.on_mutation(handle, seen.append)

        handle.find("K2Node_Event_0").move(1, 2)
        assert len(seen) == 1
        assert "NodePosY=2" in doc.serialize(handle)

        unsubscribe()
        doc.destroy(handle)
        assert handle.disposed
