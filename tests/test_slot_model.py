"""
Tests for the slot model and the link-record fallback.
"""

import pytest

from src.console import LayoutValidationError
from src.console.descriptor import parse_descriptor
from src.console.models import Advertisement, ContentRef, Slot
from src.console.slot_model import SlotModel, fallback_slots

from tests.conftest import link


@pytest.fixture
def links():
    """Three videos of one device, stored out of grid order."""
    return [
        link(11, 'b.mp4', grid_position=2, rotation=90),
        link(10, 'a.mp4', grid_position=1, device_rotation=180, rotation=90),
        link(12, 'c.mp4', grid_position=3),
    ]


@pytest.fixture
def grid_model(links):
    """grid_4 with a.mp4 and b.mp4 in slots 1 and 2."""
    model = SlotModel('grid_4', [Slot(i) for i in range(1, 5)], links, [Advertisement('c.png', 270)])
    model.assign(1, ContentRef.video('a.mp4'))
    model.assign(2, ContentRef.video('b.mp4'))
    return model


# =============================================================================
# Fallback
# =============================================================================

class TestFallbackSlots:
    """Tests for building slots from link records."""

    def test_sorted_by_grid_position(self, links):
        """Test links at positions 2,1,3 land in slots 1,2,3 in grid order."""
        slots = fallback_slots(links)
        assert [s.content.name for s in slots] == ['a.mp4', 'b.mp4', 'c.mp4']
        assert [s.position for s in slots] == [1, 2, 3]

    def test_rotation_and_link_id(self, links):
        """Test rotation prefers device_rotation and link ids are kept."""
        slots = fallback_slots(links)
        assert (slots[0].rotation, slots[0].link_id) == (180, 10)
        assert (slots[1].rotation, slots[1].link_id) == (90, 11)
        assert slots[2].rotation is None

    def test_missing_grid_position_sorts_first(self):
        """Test a record without grid_position sorts as 0, keeping input order on ties."""
        slots = fallback_slots([
            link(1, 'x.mp4', grid_position=1),
            link(2, 'y.mp4'),
            link(3, 'z.mp4'),
        ])
        assert [s.content.name for s in slots] == ['y.mp4', 'z.mp4', 'x.mp4']

    def test_no_links_is_one_empty_slot(self):
        """Test the fallback without records."""
        slots = fallback_slots([])
        assert len(slots) == 1
        assert slots[0].is_empty

    def test_model_from_links_uses_list_mode(self, links):
        """Test the fallback model is single with one slot per video."""
        model = SlotModel.from_links(links)
        assert model.layout_mode == 'single'
        assert model.slot_count == 3


# =============================================================================
# Building from a descriptor
# =============================================================================

class TestFromDescriptor:
    """Tests for building the model from a stored descriptor."""

    def test_link_ids_recovered_by_video_name(self, links):
        """Test video entries find their link id."""
        descriptor = parse_descriptor('split_h', [
            {'position': 2, 'video_name': 'c.mp4', 'content_type': 'video', 'rotation': 90},
        ])
        model = SlotModel.from_descriptor(descriptor, links)

        assert model.slot_count == 2
        assert model.slot(1).is_empty
        assert model.slot(2).link_id == 12
        assert model.slot(2).rotation == 90

    def test_orphaned_entry_honoured(self, links):
        """Test a descriptor video without a link record still shows."""
        descriptor = parse_descriptor('single', [
            {'position': 1, 'video_name': 'gone.mp4', 'content_type': 'video'},
        ])
        model = SlotModel.from_descriptor(descriptor, links)
        assert model.slot(1).content == ContentRef.video('gone.mp4')
        assert model.slot(1).link_id is None

    def test_rotation_comes_from_descriptor(self, links):
        """Test the descriptor's rotation wins over the link's."""
        descriptor = parse_descriptor('single', [
            {'position': 1, 'video_name': 'a.mp4', 'content_type': 'video', 'rotation': None},
        ])
        model = SlotModel.from_descriptor(descriptor, links)
        assert model.slot(1).rotation is None

    def test_none_descriptor_uses_fallback(self, links):
        """Test no descriptor means the link fallback."""
        model = SlotModel.from_descriptor(None, links)
        assert [s.content.name for s in model.slots] == ['a.mp4', 'b.mp4', 'c.mp4']


# =============================================================================
# Mutations
# =============================================================================

class TestAssign:
    """Tests for assigning content."""

    def test_assign_moves_existing_content(self, grid_model):
        """Test assigning X to slot i while X sits in j empties j."""
        grid_model.assign(4, ContentRef.video('a.mp4'))

        assert grid_model.slot(1).is_empty
        assert grid_model.slot(4).content == ContentRef.video('a.mp4')
        assert grid_model.placed().count(ContentRef.video('a.mp4')) == 1

    def test_assign_out_of_range(self, grid_model):
        """Test an out-of-range position is rejected."""
        with pytest.raises(LayoutValidationError):
            grid_model.assign(5, ContentRef.video('c.mp4'))
        with pytest.raises(LayoutValidationError):
            grid_model.assign(0, ContentRef.video('c.mp4'))

    def test_default_rotation_for_video(self, grid_model):
        """Test a video takes its link's effective rotation."""
        assert grid_model.slot(1).rotation == 180

    def test_default_rotation_for_image(self, grid_model):
        """Test an image takes the advertisement's rotation."""
        grid_model.assign(3, ContentRef.image('c.png'))
        assert grid_model.slot(3).rotation == 270

    def test_explicit_rotation(self, grid_model):
        """Test an explicit rotation wins over the default."""
        grid_model.assign(3, ContentRef.video('c.mp4'), rotation=90)
        assert grid_model.slot(3).rotation == 90

    @pytest.mark.parametrize("rotation", [False, True, 45, "90"])
    def test_invalid_rotation_rejected(self, grid_model, rotation):
        """Test assign validates rotation the same way set_rotation does."""
        with pytest.raises(LayoutValidationError):
            grid_model.assign(3, ContentRef.video('c.mp4'), rotation=rotation)
        assert grid_model.slot(3).is_empty

    def test_image_has_no_link_id(self, grid_model):
        """Test assigning an image over a video drops the stale link id."""
        grid_model.assign(1, ContentRef.image('c.png'))
        assert grid_model.slot(1).link_id is None

    def test_video_gets_its_own_link_id(self, grid_model):
        """Test assigning a video carries that video's link id."""
        grid_model.assign(1, ContentRef.video('c.mp4'))
        assert grid_model.slot(1).link_id == 12


class TestClearAndRotation:
    """Tests for clearing slots and overriding rotation."""

    def test_clear(self, grid_model):
        """Test clearing empties the slot."""
        grid_model.clear(2)
        assert grid_model.slot(2).is_empty
        assert grid_model.slot(2).rotation is None

    def test_clear_out_of_range_is_noop(self, grid_model):
        """Test clearing never errors."""
        grid_model.clear(99)
        grid_model.clear(-1)
        assert len(grid_model.placed()) == 2

    def test_set_rotation(self, grid_model):
        """Test overriding an occupied slot's rotation."""
        grid_model.set_rotation(2, 270)
        assert grid_model.slot(2).rotation == 270

    def test_set_rotation_unset(self, grid_model):
        """Test None unsets the rotation."""
        grid_model.set_rotation(2, None)
        assert grid_model.slot(2).rotation is None

    def test_set_rotation_empty_slot(self, grid_model):
        """Test rotation on an empty slot is rejected."""
        with pytest.raises(LayoutValidationError):
            grid_model.set_rotation(3, 90)

    @pytest.mark.parametrize("rotation", [45, 360, -90, "90", False, True])
    def test_set_rotation_invalid_value(self, grid_model, rotation):
        """Test invalid rotation values are rejected."""
        with pytest.raises(LayoutValidationError):
            grid_model.set_rotation(1, rotation)

    def test_set_rotation_out_of_range(self, grid_model):
        """Test an out-of-range position is rejected."""
        with pytest.raises(LayoutValidationError):
            grid_model.set_rotation(7, 90)


class TestChangePreset:
    """Tests for switching presets."""

    @pytest.mark.parametrize("preset_id,count", [
        ("single", 1), ("split_h", 2), ("split_v", 2),
        ("grid_3", 3), ("grid_4", 4), ("grid_1x4", 4),
    ])
    def test_slot_count_matches_preset(self, grid_model, preset_id, count):
        """Test change_preset always yields the preset's slot count."""
        grid_model.change_preset(preset_id)
        assert grid_model.slot_count == count
        assert grid_model.layout_mode == preset_id

    def test_shrinking_discards_surplus(self, grid_model):
        """Test surplus slots are returned and their content becomes available."""
        grid_model.assign(3, ContentRef.video('c.mp4'))
        assert grid_model.preview_preset_change('split_h') == [ContentRef.video('c.mp4')]
        assert grid_model.slot_count == 4

        discarded = grid_model.change_preset('split_h')

        assert discarded == [ContentRef.video('c.mp4')]
        assert [s.content.name for s in grid_model.slots] == ['a.mp4', 'b.mp4']
        assert 'c.mp4' in [record.video_name for record in grid_model.available_videos()]

    def test_growing_adds_empty_slots(self):
        """Test new slots start empty and leading slots stay in place."""
        model = SlotModel.from_links([link(1, 'a.mp4')])
        model.change_preset('grid_3')
        assert model.slot(1).content == ContentRef.video('a.mp4')
        assert model.slot(2).is_empty and model.slot(3).is_empty

    def test_unknown_preset(self, grid_model):
        """Test an unknown preset id is rejected without changes."""
        with pytest.raises(LayoutValidationError):
            grid_model.change_preset('grid_9')
        assert grid_model.layout_mode == 'grid_4'


class TestAvailableContent:
    """Tests for the lists of unplaced content."""

    def test_available_videos(self, grid_model):
        """Test placed videos are not offered."""
        assert [record.video_name for record in grid_model.available_videos()] == ['c.mp4']

    def test_available_advertisements(self, grid_model):
        """Test placed images are not offered."""
        assert grid_model.available_advertisements() == [Advertisement('c.png', 270)]
        grid_model.assign(3, ContentRef.image('c.png'))
        assert grid_model.available_advertisements() == []


class TestDescriptorRoundTrip:
    """Tests that saving and reloading keeps the arrangement."""

    def test_grid_with_image_descriptor(self, grid_model):
        """Test grid_4 with videos in 1-2 and an image in 3."""
        grid_model.assign(3, ContentRef.image('c.png'))
        entries = grid_model.to_descriptor().to_list()

        assert [e['content_type'] for e in entries] == ['video', 'video', 'image', 'empty']
        assert entries[2]['ad_name'] == 'c.png'
        assert entries[2]['position'] == 3
        assert [e for e in entries if e['content_type'] == 'image'] == [entries[2]]

    def test_reinitialise_from_saved_descriptor(self, grid_model, links):
        """Test reloading a saved descriptor gives identical slots."""
        grid_model.assign(3, ContentRef.image('c.png'))
        grid_model.set_rotation(2, 0)
        saved = grid_model.to_descriptor()

        reloaded = SlotModel.from_descriptor(
            parse_descriptor(saved.layout_mode, saved.to_config()), links
        )
        assert reloaded.layout_mode == grid_model.layout_mode
        assert reloaded.slots == grid_model.slots

    def test_list_mode_round_trip(self, links):
        """Test a link-derived list survives a save and reload."""
        model = SlotModel.from_links(links)
        saved = model.to_descriptor()

        reloaded = SlotModel.from_descriptor(
            parse_descriptor(saved.layout_mode, saved.to_config()), links
        )
        assert reloaded.slots == model.slots
