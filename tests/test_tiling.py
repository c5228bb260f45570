"""Tests for tile grid computation and chunk extraction."""

import numpy as np
import pytest

from png_upscale.tiling import (
    Region,
    TileDescriptor,
    compute_tile_grid,
    extract_chunk,
    validate_image,
)

from conftest import random_image


DIMS = [1, 2, 3, 15, 16, 17, 31, 32, 33, 47, 50, 64, 65, 100, 161]


def coverage_count(tiles, width, height):
    count = np.zeros((2 * height, 2 * width), dtype=np.int32)
    for tile in tiles:
        count[tile.output_region.slices()] += 1
    return count


class TestRegion:
    """Test Region geometry."""

    def test_basic_properties(self):
        region = Region(10, 20, 40, 60)
        assert region.x1 == 50
        assert region.y1 == 80
        assert region.shape == (60, 40)

    def test_slices(self):
        region = Region(10, 20, 40, 60)
        assert region.slices() == (slice(20, 80), slice(10, 50))


class TestWorkedExample:
    """2000x1500 with the default chunk/pad sizes."""

    def setup_method(self):
        self.tiles = compute_tile_grid(2000, 1500, chunk_size=1024, pad_size=32)

    def test_grid_shape(self):
        assert len(self.tiles) == 4
        assert [(t.row, t.col) for t in self.tiles] == [(0, 0), (0, 1), (1, 0), (1, 1)]

    def test_first_tile(self):
        tile = self.tiles[0]
        assert tile.input_region.x == 0
        assert tile.input_region.x1 == 1032
        assert tile.input_region.y == 0
        assert tile.input_region.y1 == 782
        assert tile.output_region == Region(0, 0, 2000, 1500)
        assert tile.inner_offset == (0, 0)

    def test_second_tile(self):
        tile = self.tiles[1]
        assert tile.input_region.x == 968
        assert tile.input_region.x1 == 2000
        assert tile.output_region.x == 2000
        assert tile.output_region.x1 == 4000
        assert tile.inner_offset == (32, 0)

    def test_bottom_right_tile(self):
        tile = self.tiles[3]
        assert tile.input_region == Region(968, 718, 1032, 782)
        assert tile.output_region == Region(2000, 1500, 2000, 1500)
        assert tile.inner_offset == (32, 32)

    def test_total_output_width(self):
        assert max(t.output_region.x1 for t in self.tiles) == 4000
        assert max(t.output_region.y1 for t in self.tiles) == 3000


class TestGridCoverage:
    """Output regions must tile the doubled canvas exactly once."""

    @pytest.mark.parametrize("width", DIMS)
    @pytest.mark.parametrize("height", [1, 16, 17, 50, 161])
    def test_exact_cover(self, width, height):
        tiles = compute_tile_grid(width, height, chunk_size=16, pad_size=4)
        count = coverage_count(tiles, width, height)
        assert np.all(count == 1)

    @pytest.mark.parametrize("dim", [1025, 2001, 2047, 3073, 5000])
    def test_default_chunk_remainders(self, dim):
        tiles = compute_tile_grid(dim, 1, chunk_size=1024, pad_size=32)
        count = coverage_count(tiles, dim, 1)
        assert np.all(count == 1)
        assert tiles[-1].output_region.x1 == 2 * dim

    def test_last_tile_absorbs_remainder(self):
        # ceil(2001 / 1024) = 2 tiles of floor(2001 / 2) = 1000, 1 pixel left over
        tiles = compute_tile_grid(2001, 10, chunk_size=1024, pad_size=32)
        assert [t.output_region.width for t in tiles] == [2000, 2002]
        assert tiles[-1].input_region.x1 == 2001

    @pytest.mark.parametrize("width", DIMS)
    def test_output_sizes_even(self, width):
        for tile in compute_tile_grid(width, 33, chunk_size=16, pad_size=4):
            assert tile.output_region.width % 2 == 0
            assert tile.output_region.height % 2 == 0

    def test_row_major_order(self):
        tiles = compute_tile_grid(100, 70, chunk_size=16, pad_size=4)
        positions = [(t.row, t.col) for t in tiles]
        assert positions == sorted(positions)
        assert positions[1] == (0, 1)


class TestPadding:
    """Padded input regions."""

    @pytest.mark.parametrize("width", DIMS)
    def test_input_contains_core(self, width):
        for tile in compute_tile_grid(width, 50, chunk_size=16, pad_size=4):
            inp, out = tile.input_region, tile.output_region
            dx, dy = tile.inner_offset
            assert inp.x + dx == out.x // 2
            assert inp.y + dy == out.y // 2
            assert inp.x <= out.x // 2 and inp.x1 >= out.x1 // 2
            assert inp.y <= out.y // 2 and inp.y1 >= out.y1 // 2

    def test_pad_clipped_at_edges(self):
        tiles = compute_tile_grid(50, 50, chunk_size=16, pad_size=4)
        for tile in tiles:
            assert tile.input_region.x >= 0 and tile.input_region.y >= 0
            assert tile.input_region.x1 <= 50 and tile.input_region.y1 <= 50
        assert tiles[0].input_region.x == 0
        assert tiles[0].inner_offset == (0, 0)
        assert tiles[-1].input_region.x1 == 50

    def test_interior_tile_padded_both_sides(self):
        # 48 -> 3 tiles of 16
        tiles = compute_tile_grid(48, 1, chunk_size=16, pad_size=4)
        middle = tiles[1]
        assert middle.input_region.x == 12
        assert middle.input_region.x1 == 36
        assert middle.inner_offset == (4, 0)

    def test_pad_larger_than_image(self):
        tiles = compute_tile_grid(5, 5, chunk_size=16, pad_size=32)
        assert len(tiles) == 1
        assert tiles[0].input_region == Region(0, 0, 5, 5)

    def test_zero_pad(self):
        for tile in compute_tile_grid(40, 40, chunk_size=16, pad_size=0):
            assert tile.inner_offset == (0, 0)
            assert tile.input_region.width * 2 == tile.output_region.width


class TestGridValidation:
    """Invalid grid arguments."""

    @pytest.mark.parametrize("kwargs", [
        dict(width=0, height=10),
        dict(width=10, height=-1),
        dict(width=10, height=10, chunk_size=0),
        dict(width=10, height=10, pad_size=-1),
    ])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            compute_tile_grid(**kwargs)

    def test_descriptor_is_frozen(self):
        tile = compute_tile_grid(10, 10)[0]
        assert isinstance(tile, TileDescriptor)
        with pytest.raises(AttributeError):
            tile.row = 3


class TestExtractChunk:
    """Test chunk extraction."""

    def test_values_copied(self):
        image = random_image(40, 30)
        region = Region(5, 7, 10, 12)
        chunk = extract_chunk(image, region)
        assert chunk.shape == (12, 10, 4)
        assert np.array_equal(chunk, image[7:19, 5:15])

    def test_idempotent(self):
        image = random_image(40, 30)
        region = Region(3, 4, 20, 25)
        first = extract_chunk(image, region)
        second = extract_chunk(image, region)
        assert first.tobytes() == second.tobytes()

    def test_independent_of_source(self):
        image = random_image(20, 20)
        original = image.copy()
        chunk = extract_chunk(image, Region(0, 0, 10, 10))
        chunk[:] = 0
        assert np.array_equal(image, original)

        image[:] = 255
        assert not np.any(chunk)

    def test_contiguous(self):
        image = random_image(20, 20)
        chunk = extract_chunk(image, Region(2, 2, 5, 5))
        assert chunk.flags["C_CONTIGUOUS"]
        assert chunk.dtype == np.uint8

    @pytest.mark.parametrize("region", [
        Region(-1, 0, 5, 5),
        Region(0, 0, 21, 5),
        Region(16, 16, 5, 5),
        Region(0, 0, 0, 5),
    ])
    def test_out_of_bounds(self, region):
        with pytest.raises(ValueError):
            extract_chunk(random_image(20, 20), region)


class TestValidateImage:
    """Test image validation."""

    def test_returns_width_height(self):
        assert validate_image(random_image(30, 40)) == (40, 30)

    @pytest.mark.parametrize("array", [
        np.zeros((10, 10, 3), dtype=np.uint8),
        np.zeros((10, 10), dtype=np.uint8),
        np.zeros((10, 10, 4), dtype=np.float32),
        np.zeros((0, 10, 4), dtype=np.uint8),
    ])
    def test_rejects_invalid(self, array):
        with pytest.raises(ValueError):
            validate_image(array)

    def test_rejects_non_array(self):
        with pytest.raises(ValueError):
            validate_image([[0, 0, 0, 0]])
