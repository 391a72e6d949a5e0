"""Frame discovery over the design tree."""

import copy

from storylab.design_tree import (
    collect,
    extract_frames,
    is_frame_like,
    iter_nodes,
    node_to_frame,
    preview_frames,
    screen_names,
)


class TestIterNodes:
    def test_pre_order_children_in_array_order(self, sample_document):
        ids = [n["id"] for n in iter_nodes(sample_document)]
        assert ids == ["0:0", "0:1", "1:1", "1:5", "1:2", "1:6", "1:3"]

    def test_leaf_without_children_key(self):
        assert [n["id"] for n in iter_nodes({"id": "9:9", "type": "TEXT"})] == ["9:9"]


class TestExtractFrames:
    def test_nested_and_sibling_frames_in_document_order(self, sample_document):
        frames, total = extract_frames(sample_document)

        assert [f.name for f in frames] == ["F1", "F2", "F3"]
        assert total == 3

    def test_input_tree_is_not_mutated(self, sample_document):
        before = copy.deepcopy(sample_document)
        extract_frames(sample_document, max_frames=1)
        assert sample_document == before

    def test_component_types_count_as_frames(self, make_frame_node):
        doc = {"id": "0:0", "type": "DOCUMENT", "children": [
            make_frame_node("2:1", "Button", node_type="COMPONENT"),
            make_frame_node("2:2", "Buttons", node_type="COMPONENT_SET"),
            make_frame_node("2:3", "Group", node_type="GROUP"),
        ]}
        frames, total = extract_frames(doc)
        assert [f.metadata.type for f in frames] == ["COMPONENT", "COMPONENT_SET"]
        assert total == 2

    def test_truncates_to_cap_and_reports_total(self, make_frame_node):
        """120 frames in the file, 50 kept: the first 50 in order."""
        doc = {"id": "0:0", "type": "DOCUMENT", "children": [
            make_frame_node(f"3:{i}", f"Screen {i}") for i in range(120)
        ]}
        frames, total = extract_frames(doc, max_frames=50)

        assert len(frames) == 50
        assert total == 120
        assert frames[0].id == "3:0"
        assert frames[-1].id == "3:49"

    def test_frames_start_without_image(self, sample_document):
        frames, _ = extract_frames(sample_document)
        assert all(f.image_url == "" for f in frames)
        assert all(f.file_size is None for f in frames)


class TestNodeToFrame:
    def test_missing_bounding_box_defaults_to_zero(self):
        frame = node_to_frame({"id": "4:1", "name": "Empty", "type": "FRAME"})
        assert frame.metadata.width == 0
        assert frame.metadata.height == 0

    def test_copies_dimensions_and_type(self, make_frame_node):
        frame = node_to_frame(make_frame_node("4:2", "Login", width=1440, height=900))
        assert (frame.id, frame.name) == ("4:2", "Login")
        assert (frame.metadata.width, frame.metadata.height, frame.metadata.type) == (1440, 900, "FRAME")


class TestCollect:
    def test_stops_walking_once_limit_reached(self, make_frame_node):
        visited = []

        def predicate(node):
            visited.append(node["id"])
            return is_frame_like(node)

        doc = {"id": "0:0", "type": "DOCUMENT", "children": [
            make_frame_node(f"5:{i}", f"S{i}") for i in range(10)
        ]}
        found = collect(doc, predicate, limit=2)

        assert [n["id"] for n in found] == ["5:0", "5:1"]
        # document root plus the two matches, nothing after
        assert visited == ["0:0", "5:0", "5:1"]

    def test_zero_limit_returns_nothing(self, sample_document):
        assert collect(sample_document, is_frame_like, limit=0) == []


class TestPreviewAndScreens:
    def test_preview_keeps_only_frames_with_ids(self, make_frame_node):
        no_id = make_frame_node("", "Anonymous")
        doc = {"id": "0:0", "type": "DOCUMENT", "children": [
            no_id,
            make_frame_node("6:1", "A"),
            make_frame_node("6:2", "B", node_type="COMPONENT"),
            make_frame_node("6:3", "C"),
        ]}
        frames = preview_frames(doc, limit=5)
        assert [f.id for f in frames] == ["6:1", "6:3"]

    def test_preview_respects_limit(self, sample_document):
        assert [f.name for f in preview_frames(sample_document, limit=2)] == ["F1", "F2"]

    def test_screen_names(self, sample_document):
        assert screen_names(sample_document) == ["F1", "F2", "F3"]
